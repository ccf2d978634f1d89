from typing import Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from records_cli import auth
from records_cli.commands.seats.allocate import (
    AllocationFailure,
    AllocationResult,
    SeatOutcome,
    StudentFilters,
    load_exam,
    load_session,
    new_batch_id,
)
from records_cli.db.config import BATCH_TIMEOUT_SECONDS
from records_cli.db.transaction import atomic
from records_cli.errors import SeatAllocationError
from records_cli.models import ExamAttempt, SeatAssignment, Student
from records_cli.utils.logging_config import get_batch_logger

ATTEMPT_EXISTS = "exam attempt already recorded for this session"


def unassign_seats(
    db: Session,
    principal: auth.Principal,
    exam_id: Optional[int] = None,
    session_id: Optional[int] = None,
    filters: Optional[StudentFilters] = None,
) -> AllocationResult:
    """
    Remove seat assignments for an exam or one of its sessions.

    Students who already have an exam attempt for their session keep their
    seat and are reported as failures.
    """
    if (exam_id is None) == (session_id is None):
        raise SeatAllocationError("give exactly one of an exam or a session")

    filters = filters or StudentFilters()
    result = AllocationResult(batch_id=new_batch_id())
    log = get_batch_logger(__name__, result.batch_id)

    with atomic(db, timeout=BATCH_TIMEOUT_SECONDS):
        if session_id is not None:
            exam = load_session(db, session_id).exam
        else:
            exam = load_exam(db, exam_id)
        auth.can_manage_exam(db, principal, exam).require()

        query = (
            db.query(SeatAssignment)
            .join(Student, Student.id == SeatAssignment.student_id)
            .filter(SeatAssignment.exam_id == exam.id)
        )
        if session_id is not None:
            query = query.filter(SeatAssignment.exam_session_id == session_id)
        if filters.student_ids:
            query = query.filter(SeatAssignment.student_id.in_(filters.student_ids))
        if filters.program_id:
            query = query.filter(Student.program_id == filters.program_id)
        if filters.level_id:
            query = query.filter(Student.current_level_id == filters.level_id)
        if filters.department_id:
            query = query.filter(Student.department_id == filters.department_id)

        for assignment in query.order_by(SeatAssignment.id).all():
            attempt = (
                db.query(ExamAttempt.id)
                .filter(
                    and_(
                        ExamAttempt.student_id == assignment.student_id,
                        ExamAttempt.exam_session_id == assignment.exam_session_id,
                    )
                )
                .first()
            )
            if attempt:
                log.warning(f"Student {assignment.student_id} kept: {ATTEMPT_EXISTS}")
                result.failed.append(
                    AllocationFailure(assignment.student_id, ATTEMPT_EXISTS)
                )
                continue

            result.succeeded.append(
                SeatOutcome(
                    assignment.student_id, assignment.exam_session_id, assignment.id
                )
            )
            db.delete(assignment)

    log.info(
        f"Exam {exam.id}: {len(result.succeeded)} unassigned, {len(result.failed)} kept"
    )
    return result
