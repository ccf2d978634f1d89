"""
Requesting principals and the capability checks for each core operation.

A principal is already authenticated by the time it reaches this module.
Every check returns a Decision; callers either inspect it or call
``require()`` to raise UnauthorizedError.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Union

from sqlalchemy import and_
from sqlalchemy.orm import Session

from records_cli import models
from records_cli.errors import NotFoundError, UnauthorizedError


@dataclass(frozen=True)
class Admin:
    id: int


@dataclass(frozen=True)
class PermittedStaff:
    id: int
    can_manage_course_registration: bool = False
    can_manage_scores: bool = False
    can_manage_exams: bool = False


@dataclass(frozen=True)
class Lecturer:
    id: int
    role: models.LecturerRole
    department_id: int


@dataclass(frozen=True)
class Student:
    id: int


Principal = Union[Admin, PermittedStaff, Lecturer, Student]


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    def require(self) -> None:
        if not self.allowed:
            raise UnauthorizedError(self.reason or "not permitted")


ALLOW = Decision(True)


def deny(reason: str) -> Decision:
    return Decision(False, reason)


def is_privileged(principal: Principal) -> bool:
    """Admin and ICT staff bypass period locks."""
    return isinstance(principal, (Admin, PermittedStaff))


def is_timetabled(
    db: Session,
    lecturer_id: int,
    course_ids: Iterable[int],
    semester_id: int,
    season_id: int,
) -> bool:
    course_ids = list(course_ids)
    if not course_ids:
        return False
    return (
        db.query(models.StaffCourse.id)
        .filter(
            and_(
                models.StaffCourse.lecturer_id == lecturer_id,
                models.StaffCourse.course_id.in_(course_ids),
                models.StaffCourse.semester_id == semester_id,
                models.StaffCourse.season_id == season_id,
            )
        )
        .first()
        is not None
    )


def _holds_role(principal: Principal, roles: tuple, department_id: Optional[int]) -> bool:
    return (
        isinstance(principal, Lecturer)
        and principal.role in roles
        and department_id is not None
        and principal.department_id == department_id
    )


def can_reconcile(
    db: Session,
    principal: Principal,
    student: models.Student,
    semester_id: int,
    season_id: int,
    desired_course_ids: Iterable[int],
) -> Decision:
    if isinstance(principal, Admin):
        return ALLOW
    if isinstance(principal, PermittedStaff):
        if principal.can_manage_course_registration:
            return ALLOW
        return deny("staff member may not manage course registration")
    if isinstance(principal, Student):
        if principal.id == student.id:
            return ALLOW
        return deny("students may only change their own registration")
    if _holds_role(principal, ("HOD",), student.department_id):
        return ALLOW
    if is_timetabled(db, principal.id, desired_course_ids, semester_id, season_id):
        return ALLOW
    return deny("lecturer is neither HOD of the department nor assigned to these courses")


def _can_manage_scores(principal: Principal) -> Optional[Decision]:
    """Shared outcome for non-lecturer principals on score operations."""
    if isinstance(principal, Admin):
        return ALLOW
    if isinstance(principal, PermittedStaff):
        if principal.can_manage_scores:
            return ALLOW
        return deny("staff member may not manage scores")
    if isinstance(principal, Student):
        return deny("students may not manage scores")
    return None


def can_submit_score(
    db: Session, principal: Principal, registration: models.Registration
) -> Decision:
    decision = _can_manage_scores(principal)
    if decision is not None:
        return decision
    if _holds_role(principal, ("EXAMINER", "HOD"), registration.student.department_id):
        return ALLOW
    if is_timetabled(
        db,
        principal.id,
        [registration.course_id],
        registration.semester_id,
        registration.season_id,
    ):
        return ALLOW
    return deny("lecturer is not assigned to this course for the period")


def can_approve(principal: Principal, department_id: int) -> Decision:
    decision = _can_manage_scores(principal)
    if decision is not None:
        return decision
    if _holds_role(principal, ("EXAMINER",), department_id):
        return ALLOW
    return deny("only the department examiner may approve scores")


def can_accept(principal: Principal, department_id: int) -> Decision:
    decision = _can_manage_scores(principal)
    if decision is not None:
        return decision
    if _holds_role(principal, ("HOD",), department_id):
        return ALLOW
    return deny("only the head of department may accept scores")


def can_deapprove(principal: Principal, department_id: int) -> Decision:
    decision = _can_manage_scores(principal)
    if decision is not None:
        return decision
    if _holds_role(principal, ("EXAMINER", "HOD"), department_id):
        return ALLOW
    return deny("only the department examiner or head may revoke approval")


def can_deaccept(principal: Principal, department_id: int) -> Decision:
    return can_accept(principal, department_id)


def can_delete_score(principal: Principal, department_id: int) -> Decision:
    decision = _can_manage_scores(principal)
    if decision is not None:
        return decision
    if _holds_role(principal, ("EXAMINER", "HOD"), department_id):
        return ALLOW
    return deny("only the department examiner or head may delete scores")


def can_manage_exam(db: Session, principal: Principal, exam: models.Exam) -> Decision:
    if isinstance(principal, Admin):
        return ALLOW
    if isinstance(principal, PermittedStaff):
        if principal.can_manage_exams:
            return ALLOW
        return deny("staff member may not manage exams")
    if isinstance(principal, Student):
        return deny("students may not manage exam seating")
    if exam.created_by_lecturer_id == principal.id:
        return ALLOW
    if _holds_role(principal, ("HOD",), exam.course.department_id):
        return ALLOW
    if is_timetabled(db, principal.id, [exam.course_id], exam.semester_id, exam.season_id):
        return ALLOW
    return deny("lecturer may not manage seating for this exam")


def resolve_principal(db: Session, token: str) -> Principal:
    """
    Turn a ``kind:id`` token into a principal.

    Accepted kinds are admin, staff, lecturer and student. Staff, lecturer and
    student tokens must name an existing, active row.
    """
    kind, _, raw_id = token.partition(":")
    kind = kind.strip().lower()
    try:
        principal_id = int(raw_id)
    except ValueError:
        raise UnauthorizedError(f"unrecognised principal '{token}'")

    if kind == "admin":
        return Admin(principal_id)

    if kind == "staff":
        staff = db.query(models.IctStaff).filter(models.IctStaff.id == principal_id).first()
        if not staff:
            raise NotFoundError(f"staff member {principal_id} not found")
        if not staff.is_active:
            raise UnauthorizedError(f"staff member {principal_id} is inactive")
        return PermittedStaff(
            staff.id,
            can_manage_course_registration=staff.can_manage_course_registration,
            can_manage_scores=staff.can_manage_scores,
            can_manage_exams=staff.can_manage_exams,
        )

    if kind == "lecturer":
        lecturer = (
            db.query(models.Lecturer).filter(models.Lecturer.id == principal_id).first()
        )
        if not lecturer:
            raise NotFoundError(f"lecturer {principal_id} not found")
        if not lecturer.is_active:
            raise UnauthorizedError(f"lecturer {principal_id} is inactive")
        return Lecturer(lecturer.id, lecturer.role, lecturer.department_id)

    if kind == "student":
        student = db.query(models.Student).filter(models.Student.id == principal_id).first()
        if not student:
            raise NotFoundError(f"student {principal_id} not found")
        return Student(student.id)

    raise UnauthorizedError(f"unrecognised principal '{token}'")
