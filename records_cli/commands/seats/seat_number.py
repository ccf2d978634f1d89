from typing import Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from records_cli import auth
from records_cli.db.transaction import atomic
from records_cli.errors import ConflictError, NotFoundError
from records_cli.models import SeatAssignment
from records_cli.utils.logging_config import get_logger

logger = get_logger(__name__)


def set_seat_number(
    db: Session,
    assignment_id: int,
    seat_number: Optional[str],
    principal: auth.Principal,
) -> SeatAssignment:
    """Set or clear the seat label of an assignment. Blank labels clear it."""
    seat = seat_number.strip() if seat_number else None
    seat = seat or None
    conflict = f"seat {seat} is already taken in this session"

    with atomic(db, conflict=conflict):
        assignment = (
            db.query(SeatAssignment).filter(SeatAssignment.id == assignment_id).first()
        )
        if not assignment:
            raise NotFoundError(f"seat assignment {assignment_id} not found")
        auth.can_manage_exam(db, principal, assignment.session.exam).require()

        if seat is not None:
            taken = (
                db.query(SeatAssignment.id)
                .filter(
                    and_(
                        SeatAssignment.exam_session_id == assignment.exam_session_id,
                        SeatAssignment.seat_number == seat,
                        SeatAssignment.id != assignment.id,
                    )
                )
                .first()
            )
            if taken:
                raise ConflictError(conflict)

        assignment.seat_number = seat
        db.flush()

    logger.info(f"Seat assignment {assignment_id} seat set to {seat!r}")
    return assignment
