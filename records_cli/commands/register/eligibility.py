from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from records_cli.errors import EligibilityError, NotFoundError
from records_cli.grade_definitions import PASSING_GRADES
from records_cli.models import (
    Course,
    CoursePrerequisite,
    CreditUnitRequirement,
    Level,
    ProgramCourse,
    Registration,
    Score,
    Season,
    Semester,
    Student,
)


@dataclass(frozen=True)
class AcademicPeriod:
    semester_id: int
    level_id: int
    season_id: int


def load_period(db: Session, period: AcademicPeriod) -> Semester:
    """Check that every part of the period exists and return its semester."""
    semester = db.query(Semester).filter(Semester.id == period.semester_id).first()
    if not semester:
        raise NotFoundError(f"semester {period.semester_id} not found")
    if not db.query(Level.id).filter(Level.id == period.level_id).first():
        raise NotFoundError(f"level {period.level_id} not found")
    if not db.query(Season.id).filter(Season.id == period.season_id).first():
        raise NotFoundError(f"season {period.season_id} not found")
    return semester


def get_credit_requirement(
    db: Session, program_id: int, level_id: int, semester_type: str
) -> Optional[CreditUnitRequirement]:
    """Active credit-unit requirement for the program, level and semester type."""
    return (
        db.query(CreditUnitRequirement)
        .filter(
            and_(
                CreditUnitRequirement.program_id == program_id,
                CreditUnitRequirement.level_id == level_id,
                CreditUnitRequirement.semester_type == semester_type,
                CreditUnitRequirement.is_active == True,
            )
        )
        .first()
    )


def total_credit_units(courses: Iterable[Course]) -> int:
    return sum(course.credit_unit for course in courses)


def has_passed_before(
    db: Session,
    student_id: int,
    course_id: int,
    season_id: int,
    semester_number: int,
) -> bool:
    """
    True if the student passed ``course_id`` in a period strictly before the
    given one: an earlier season, or the same season with a lower semester
    number.
    """
    passed = (
        db.query(Registration.id)
        .join(Score, Score.registration_id == Registration.id)
        .join(Semester, Semester.id == Registration.semester_id)
        .filter(
            and_(
                Registration.student_id == student_id,
                Registration.course_id == course_id,
                Score.grade.in_(PASSING_GRADES),
                or_(
                    Registration.season_id < season_id,
                    and_(
                        Registration.season_id == season_id,
                        Semester.semester_number < semester_number,
                    ),
                ),
            )
        )
        .first()
    )
    return passed is not None


def validate_eligibility(
    db: Session,
    student_id: int,
    course_id: int,
    period: AcademicPeriod,
    tentative_courses: List[Course],
    program_id: Optional[int] = None,
    is_new_addition: bool = True,
) -> Course:
    """
    Decide whether the student may hold a registration for the course in the
    period. Nothing is written.

    Args:
        db: Database session
        student_id: Student being registered
        course_id: Course being checked
        period: Semester, level and season of the registration
        tentative_courses: Courses already accepted for the same period
        program_id: Program to check the offering against, defaults to the student's
        is_new_addition: Prerequisite and ceiling checks only apply to new courses

    Returns:
        The Course row when the registration is legal

    Raises:
        NotFoundError: student, course or any part of the period is missing
        EligibilityError: the first rule the registration breaks
    """
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        raise NotFoundError(f"student {student_id} not found")
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise NotFoundError(f"course {course_id} not found")
    semester = load_period(db, period)

    program_id = program_id or student.program_id

    link = (
        db.query(ProgramCourse)
        .filter(
            and_(
                ProgramCourse.program_id == program_id,
                ProgramCourse.course_id == course.id,
                ProgramCourse.level_id == period.level_id,
                ProgramCourse.is_active == True,
            )
        )
        .first()
    )
    if not link:
        raise EligibilityError(
            f"{course.code}: course not offered at this level for this program"
        )

    if not is_new_addition:
        return course

    prerequisites = (
        db.query(CoursePrerequisite)
        .filter(CoursePrerequisite.course_id == course.id)
        .order_by(CoursePrerequisite.id)
        .all()
    )
    for edge in prerequisites:
        if not has_passed_before(
            db,
            student.id,
            edge.prerequisite_id,
            period.season_id,
            semester.semester_number,
        ):
            raise EligibilityError(
                f"{course.code}: prerequisite {edge.prerequisite.code} has not been passed"
            )

    requirement = get_credit_requirement(db, program_id, period.level_id, semester.type)
    if requirement:
        total = total_credit_units(tentative_courses) + course.credit_unit
        if total > requirement.maximum_credit_units:
            raise EligibilityError(
                f"{course.code}: adding {course.credit_unit} credit units brings the total "
                f"to {total}, above the maximum of {requirement.maximum_credit_units}"
            )

    return course
