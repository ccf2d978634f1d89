"""
Grade definitions for the score lifecycle.

Holds the grade table, the component ceilings and the helpers that turn raw
component marks into a total, a grade, a grade point and credit points.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from records_cli.models import GradeLetter, Score

FIRST_CA_MAX = 30.0
SECOND_CA_MAX = 30.0
EXAM_MAX = 70.0
TOTAL_MAX = 100.0

COMPONENT_CEILINGS: Dict[str, float] = {
    "first_ca": FIRST_CA_MAX,
    "second_ca": SECOND_CA_MAX,
    "exam_score": EXAM_MAX,
}


@dataclass
class MarkRange:
    """Represents a mark range with minimum and maximum values."""

    min: int
    max: int


@dataclass
class GradeDefinition:
    grade: GradeLetter
    points: Optional[float]
    description: str
    marks_range: Optional[MarkRange] = None


GRADE_DEFINITIONS: List[GradeDefinition] = [
    GradeDefinition(
        grade="A",
        points=5.0,
        description="Excellent",
        marks_range=MarkRange(min=70, max=100),
    ),
    GradeDefinition(
        grade="B",
        points=4.0,
        description="Very Good",
        marks_range=MarkRange(min=60, max=69),
    ),
    GradeDefinition(
        grade="C",
        points=3.0,
        description="Good",
        marks_range=MarkRange(min=50, max=59),
    ),
    GradeDefinition(
        grade="D",
        points=2.0,
        description="Fair",
        marks_range=MarkRange(min=45, max=49),
    ),
    GradeDefinition(
        grade="E",
        points=1.0,
        description="Pass",
        marks_range=MarkRange(min=40, max=44),
    ),
    GradeDefinition(
        grade="F",
        points=0.0,
        description="Fail",
        marks_range=MarkRange(min=0, max=39),
    ),
    GradeDefinition(
        grade="P",
        points=1.0,
        description="Pass (administrative)",
    ),
    GradeDefinition(
        grade="I",
        points=None,
        description="Incomplete",
    ),
]

PASSING_GRADES = frozenset({"A", "B", "C", "D", "E", "P"})

_GRADE_LOOKUP: Dict[str, GradeDefinition] = {
    grade_def.grade: grade_def for grade_def in GRADE_DEFINITIONS
}

# Highest band first
_MARKS_TO_GRADE_LOOKUP: List[Tuple[MarkRange, GradeLetter]] = sorted(
    (
        (grade_def.marks_range, grade_def.grade)
        for grade_def in GRADE_DEFINITIONS
        if grade_def.marks_range is not None
    ),
    key=lambda x: x[0].min,
    reverse=True,
)


def get_grade_definition(grade: str) -> Optional[GradeDefinition]:
    return _GRADE_LOOKUP.get(grade)


def get_grade_points(grade: str) -> Optional[float]:
    """
    Get the point value for a given grade.

    Returns:
        Point value, or None if the grade is unknown or carries no points
    """
    grade_def = get_grade_definition(grade)
    return grade_def.points if grade_def else None


def get_grade_by_marks(marks: float) -> GradeLetter:
    """
    Map a total mark onto the grade table.

    Bands are matched on their lower bound so fractional totals such as 69.5
    fall into the band below 70.
    """
    for mark_range, grade in _MARKS_TO_GRADE_LOOKUP:
        if marks >= mark_range.min:
            return grade
    return "F"


def is_passing_grade(grade: Optional[str]) -> bool:
    return grade in PASSING_GRADES


def compute_total(
    first_ca: Optional[float],
    second_ca: Optional[float],
    exam_score: Optional[float],
) -> float:
    """Sum of the present components, capped at 100."""
    total = sum(value for value in (first_ca, second_ca, exam_score) if value is not None)
    return min(TOTAL_MAX, total)


@dataclass
class GradeResult:
    total_score: float
    grade: GradeLetter
    point: float
    credit_points: float


def grade_components(components: Mapping[str, Optional[float]], credit_unit: int) -> GradeResult:
    """
    Compute total, grade, point and credit points from component marks.

    Args:
        components: Mapping with first_ca, second_ca and exam_score (any may be None)
        credit_unit: Credit unit of the course the score belongs to

    Returns:
        GradeResult for the components
    """
    total = compute_total(
        components.get("first_ca"),
        components.get("second_ca"),
        components.get("exam_score"),
    )
    grade = get_grade_by_marks(total)
    point = get_grade_points(grade) or 0.0
    return GradeResult(
        total_score=total,
        grade=grade,
        point=point,
        credit_points=point * credit_unit,
    )


@dataclass
class ScoreSummary:
    credit_units: int
    credit_points: float
    gpa: float


def calculate_gpa(points: float, credits_for_gpa: float) -> float:
    return points / credits_for_gpa if credits_for_gpa > 0 else 0.0


def summarize_scores(scores: Iterable[Score]) -> ScoreSummary:
    """
    Summarize a set of scores for GPA purposes.

    Scores without a grade, or whose grade carries no points (I), are left out
    of both totals.
    """
    credit_units = 0
    credit_points = 0.0

    for score in scores:
        if not score.grade or get_grade_points(score.grade) is None:
            continue
        credit_unit = score.registration.course.credit_unit
        credit_units += credit_unit
        credit_points += (score.point or 0.0) * credit_unit

    return ScoreSummary(
        credit_units=credit_units,
        credit_points=credit_points,
        gpa=calculate_gpa(credit_points, credit_units),
    )
