from types import SimpleNamespace

import pytest

from records_cli.grade_definitions import (
    PASSING_GRADES,
    compute_total,
    get_grade_by_marks,
    get_grade_points,
    grade_components,
    is_passing_grade,
    summarize_scores,
)


@pytest.mark.parametrize(
    "marks, grade",
    [
        (100, "A"),
        (70, "A"),
        (69.5, "B"),
        (60, "B"),
        (59, "C"),
        (50, "C"),
        (49, "D"),
        (45, "D"),
        (44, "E"),
        (40, "E"),
        (39.9, "F"),
        (0, "F"),
    ],
)
def test_grade_bands(marks, grade):
    assert get_grade_by_marks(marks) == grade


def test_grade_points():
    assert [get_grade_points(g) for g in "ABCDEF"] == [5.0, 4.0, 3.0, 2.0, 1.0, 0.0]
    assert get_grade_points("P") == 1.0
    assert get_grade_points("I") is None
    assert get_grade_points("Z") is None


def test_passing_grades():
    assert PASSING_GRADES == {"A", "B", "C", "D", "E", "P"}
    assert is_passing_grade("E")
    assert not is_passing_grade("F")
    assert not is_passing_grade("I")
    assert not is_passing_grade(None)


def test_total_ignores_missing_components_and_caps():
    assert compute_total(10, None, 40) == 50
    assert compute_total(30, 30, 70) == 100
    assert compute_total(None, None, None) == 0


def test_grade_components_example():
    result = grade_components({"first_ca": 28, "second_ca": 25, "exam_score": 40}, 4)

    assert result.total_score == 93
    assert result.grade == "A"
    assert result.point == 5.0
    assert result.credit_points == 20.0


def _score(grade, point, credit_unit):
    course = SimpleNamespace(credit_unit=credit_unit)
    return SimpleNamespace(
        grade=grade, point=point, registration=SimpleNamespace(course=course)
    )


def test_summarize_scores():
    summary = summarize_scores(
        [
            _score("A", 5.0, 3),
            _score("C", 3.0, 4),
            _score("F", 0.0, 2),
            _score("I", None, 3),
            _score(None, None, 3),
        ]
    )

    assert summary.credit_units == 9
    assert summary.credit_points == 27.0
    assert summary.gpa == 3.0


def test_summarize_nothing():
    summary = summarize_scores([])
    assert summary.credit_units == 0
    assert summary.gpa == 0.0
