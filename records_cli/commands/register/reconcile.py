from dataclasses import dataclass, field
from typing import Iterable, List

from sqlalchemy import and_
from sqlalchemy.orm import Session

from records_cli.auth import Principal, can_reconcile, is_privileged
from records_cli.commands.register.eligibility import (
    AcademicPeriod,
    get_credit_requirement,
    load_period,
    total_credit_units,
    validate_eligibility,
)
from records_cli.db.transaction import atomic
from records_cli.errors import NotFoundError, ReconciliationError, UnauthorizedError
from records_cli.models import Course, Registration, Student
from records_cli.utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ReconciliationResult:
    added: List[Course] = field(default_factory=list)
    removed: List[Course] = field(default_factory=list)


def list_registrations(
    db: Session, student_id: int, semester_id: int, season_id: int
) -> List[Registration]:
    return (
        db.query(Registration)
        .join(Course, Course.id == Registration.course_id)
        .filter(
            and_(
                Registration.student_id == student_id,
                Registration.semester_id == semester_id,
                Registration.season_id == season_id,
            )
        )
        .order_by(Course.code)
        .all()
    )


def registered_credit_units(
    db: Session, student_id: int, semester_id: int, season_id: int
) -> int:
    registrations = list_registrations(db, student_id, semester_id, season_id)
    return total_credit_units(registration.course for registration in registrations)


def reconcile_registrations(
    db: Session,
    student_id: int,
    period: AcademicPeriod,
    desired_course_ids: Iterable[int],
    principal: Principal,
) -> ReconciliationResult:
    """
    Make the student's registrations for the period match ``desired_course_ids``.

    Additions are validated one at a time against the running set, so the
    order of ``desired_course_ids`` decides which addition trips a credit
    ceiling. Drops and adds are applied together or not at all.
    """
    desired = list(dict.fromkeys(desired_course_ids))

    with atomic(db, conflict="already registered"):
        student = db.query(Student).filter(Student.id == student_id).first()
        if not student:
            raise NotFoundError(f"student {student_id} not found")
        semester = load_period(db, period)

        can_reconcile(
            db, principal, student, period.semester_id, period.season_id, desired
        ).require()

        if not student.is_active:
            raise ReconciliationError(f"student {student.reg_no} is not active")
        if not semester.is_active:
            raise ReconciliationError(f"semester {semester.name} is not active")
        if semester.are_student_edits_locked and not is_privileged(principal):
            raise UnauthorizedError(f"registration edits for {semester.name} are locked")

        current = list_registrations(db, student.id, period.semester_id, period.season_id)
        current_ids = {registration.course_id for registration in current}
        desired_ids = set(desired)

        to_drop = [r for r in current if r.course_id not in desired_ids]
        to_add = [course_id for course_id in desired if course_id not in current_ids]

        for registration in to_drop:
            if registration.has_score or registration.score is not None:
                raise ReconciliationError(
                    f"{registration.course.code}: cannot drop a graded course"
                )

        tentative = [r.course for r in current if r.course_id in desired_ids]
        added: List[Course] = []
        for course_id in to_add:
            course = validate_eligibility(
                db,
                student.id,
                course_id,
                period,
                tentative,
                program_id=student.program_id,
            )
            tentative.append(course)
            added.append(course)

        requirement = get_credit_requirement(
            db, student.program_id, period.level_id, semester.type
        )
        if requirement:
            total = total_credit_units(tentative)
            if total < requirement.minimum_credit_units:
                raise ReconciliationError(
                    f"total of {total} credit units is below the minimum of "
                    f"{requirement.minimum_credit_units}"
                )
            if total > requirement.maximum_credit_units:
                raise ReconciliationError(
                    f"total of {total} credit units is above the maximum of "
                    f"{requirement.maximum_credit_units}"
                )

        removed = [registration.course for registration in to_drop]
        for registration in to_drop:
            db.delete(registration)
        for course in added:
            db.add(
                Registration(
                    student_id=student.id,
                    course_id=course.id,
                    semester_id=period.semester_id,
                    season_id=period.season_id,
                    level_id=period.level_id,
                )
            )
        db.flush()

    logger.info(
        f"Reconciled registrations for student {student_id} in semester "
        f"{period.semester_id}: +{[c.code for c in added]} -{[c.code for c in removed]}"
    )
    return ReconciliationResult(added=added, removed=removed)
