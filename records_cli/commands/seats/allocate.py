import math
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from nanoid import generate
from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from records_cli import auth
from records_cli.db.config import BATCH_TIMEOUT_SECONDS
from records_cli.db.transaction import atomic
from records_cli.errors import NotFoundError, SeatAllocationError
from records_cli.models import Exam, ExamSession, Registration, SeatAssignment, Student
from records_cli.utils.logging_config import get_batch_logger

ASSIGNABLE_STATUSES = ("PENDING", "ACTIVE")

NO_CAPACITY = "no session with capacity available"
ALREADY_ASSIGNED = "already assigned"
ALREADY_IN_SESSION = "already assigned to this session"


@dataclass
class StudentFilters:
    student_ids: List[int] = field(default_factory=list)
    program_id: Optional[int] = None
    level_id: Optional[int] = None
    department_id: Optional[int] = None


@dataclass
class AllocationOptions:
    overwrite_existing: bool = False


@dataclass
class SeatOutcome:
    student_id: int
    exam_session_id: int
    assignment_id: Optional[int] = None


@dataclass
class AllocationFailure:
    student_id: int
    reason: str


@dataclass
class AllocationResult:
    batch_id: str
    succeeded: List[SeatOutcome] = field(default_factory=list)
    failed: List[AllocationFailure] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return len(self.succeeded) + len(self.failed)


def new_batch_id() -> str:
    return generate(size=12)


def load_exam(db: Session, exam_id: int) -> Exam:
    exam = db.query(Exam).filter(Exam.id == exam_id).first()
    if not exam:
        raise NotFoundError(f"exam {exam_id} not found")
    return exam


def load_session(db: Session, session_id: int) -> ExamSession:
    session = db.query(ExamSession).filter(ExamSession.id == session_id).first()
    if not session:
        raise NotFoundError(f"exam session {session_id} not found")
    return session


def ensure_assignable(exam: Exam) -> None:
    if exam.status not in ASSIGNABLE_STATUSES:
        raise SeatAllocationError(
            f"cannot assign seats for an exam with status {exam.status}"
        )


def remaining_capacity(db: Session, session: ExamSession) -> float:
    """Free places in the session; unbounded sessions report infinity."""
    if session.max_attendees is None:
        return math.inf
    taken = (
        db.query(func.count(SeatAssignment.id))
        .filter(SeatAssignment.exam_session_id == session.id)
        .scalar()
    )
    return session.max_attendees - taken


def eligible_students(
    db: Session, exam: Exam, filters: Optional[StudentFilters] = None
) -> List[Student]:
    """Active students matching the filters who are registered for the exam's course and period."""
    filters = filters or StudentFilters()
    registered = db.query(Registration.student_id).filter(
        and_(
            Registration.course_id == exam.course_id,
            Registration.semester_id == exam.semester_id,
            Registration.season_id == exam.season_id,
        )
    )
    query = db.query(Student).filter(
        Student.is_active == True, Student.id.in_(registered)
    )
    if filters.student_ids:
        query = query.filter(Student.id.in_(filters.student_ids))
    if filters.program_id:
        query = query.filter(Student.program_id == filters.program_id)
    if filters.level_id:
        query = query.filter(Student.current_level_id == filters.level_id)
    if filters.department_id:
        query = query.filter(Student.department_id == filters.department_id)
    return query.order_by(Student.id).all()


def existing_assignments(db: Session, exam_id: int) -> Dict[int, SeatAssignment]:
    assignments = db.query(SeatAssignment).filter(SeatAssignment.exam_id == exam_id).all()
    return {assignment.student_id: assignment for assignment in assignments}


def _place(
    db: Session,
    exam: Exam,
    student: Student,
    session: ExamSession,
    existing: Optional[SeatAssignment],
) -> SeatOutcome:
    """Write one assignment inside its own savepoint."""
    with db.begin_nested():
        if existing:
            existing.exam_session_id = session.id
            existing.seat_number = None
            existing.assigned_at = datetime.now()
            assignment = existing
        else:
            assignment = SeatAssignment(
                student_id=student.id, exam_id=exam.id, exam_session_id=session.id
            )
            db.add(assignment)
        db.flush()
    return SeatOutcome(student.id, session.id, assignment.id)


def allocate_seats_for_exam(
    db: Session,
    principal: auth.Principal,
    exam_id: int,
    filters: Optional[StudentFilters] = None,
    options: Optional[AllocationOptions] = None,
    rng: Optional[random.Random] = None,
) -> AllocationResult:
    """
    Spread eligible students across the exam's active sessions.

    Sessions and students are shuffled independently, then each student is
    offered sessions round-robin from a cursor that keeps moving between
    students. Per-student rule failures are collected in the result; only a
    database failure aborts the batch.
    """
    options = options or AllocationOptions()
    rng = rng or random.Random()
    result = AllocationResult(batch_id=new_batch_id())
    log = get_batch_logger(__name__, result.batch_id)

    with atomic(db, conflict=ALREADY_ASSIGNED, timeout=BATCH_TIMEOUT_SECONDS):
        exam = load_exam(db, exam_id)
        auth.can_manage_exam(db, principal, exam).require()
        ensure_assignable(exam)

        sessions = (
            db.query(ExamSession)
            .filter(ExamSession.exam_id == exam.id, ExamSession.is_active == True)
            .order_by(ExamSession.id)
            .all()
        )
        if not sessions:
            raise NotFoundError(f"no active sessions for exam {exam.id}")

        remaining = {session.id: remaining_capacity(db, session) for session in sessions}
        if all(capacity <= 0 for capacity in remaining.values()):
            raise SeatAllocationError(f"all active sessions for exam {exam.id} are full")

        students = eligible_students(db, exam, filters)
        if not students:
            raise NotFoundError(f"no eligible students registered for exam {exam.id}")

        rng.shuffle(sessions)
        rng.shuffle(students)
        current = existing_assignments(db, exam.id)
        cursor = 0

        for student in students:
            existing = current.get(student.id)
            if existing and not options.overwrite_existing:
                result.failed.append(AllocationFailure(student.id, ALREADY_ASSIGNED))
                continue

            old_session_id = existing.exam_session_id if existing else None
            if old_session_id in remaining:
                remaining[old_session_id] += 1

            outcome = None
            failure = NO_CAPACITY
            for _ in range(len(sessions)):
                session = sessions[cursor]
                cursor = (cursor + 1) % len(sessions)
                if remaining[session.id] <= 0:
                    continue
                try:
                    outcome = _place(db, exam, student, session, existing)
                except IntegrityError:
                    log.warning(f"Student {student.id} collided on session {session.id}")
                    failure = ALREADY_ASSIGNED
                    break
                remaining[session.id] -= 1
                break

            if outcome:
                result.succeeded.append(outcome)
                continue

            if old_session_id in remaining:
                remaining[old_session_id] -= 1
            log.warning(f"Student {student.id} not placed: {failure}")
            result.failed.append(AllocationFailure(student.id, failure))

    log.info(
        f"Exam {exam_id}: {len(result.succeeded)} placed, {len(result.failed)} failed"
    )
    return result


def allocate_seats_to_session(
    db: Session,
    principal: auth.Principal,
    session_id: int,
    filters: Optional[StudentFilters] = None,
    options: Optional[AllocationOptions] = None,
) -> AllocationResult:
    """Place eligible students, in id order, into one named session."""
    options = options or AllocationOptions()
    result = AllocationResult(batch_id=new_batch_id())
    log = get_batch_logger(__name__, result.batch_id)

    with atomic(db, conflict=ALREADY_ASSIGNED, timeout=BATCH_TIMEOUT_SECONDS):
        session = load_session(db, session_id)
        exam = session.exam
        auth.can_manage_exam(db, principal, exam).require()
        ensure_assignable(exam)
        if not session.is_active:
            raise SeatAllocationError(f"exam session {session.id} is not active")

        remaining = remaining_capacity(db, session)
        if remaining <= 0:
            raise SeatAllocationError(f"exam session {session.id} is already full")

        students = eligible_students(db, exam, filters)
        if not students:
            raise NotFoundError(f"no eligible students registered for exam {exam.id}")

        current = existing_assignments(db, exam.id)

        for student in students:
            existing = current.get(student.id)
            if existing and existing.exam_session_id == session.id:
                result.failed.append(AllocationFailure(student.id, ALREADY_IN_SESSION))
                continue
            if existing and not options.overwrite_existing:
                result.failed.append(AllocationFailure(student.id, ALREADY_ASSIGNED))
                continue
            if remaining <= 0:
                log.warning(f"Student {student.id} not placed: {NO_CAPACITY}")
                result.failed.append(AllocationFailure(student.id, NO_CAPACITY))
                continue

            try:
                outcome = _place(db, exam, student, session, existing)
            except IntegrityError:
                log.warning(f"Student {student.id} collided on session {session.id}")
                result.failed.append(AllocationFailure(student.id, ALREADY_ASSIGNED))
                continue
            remaining -= 1
            result.succeeded.append(outcome)

    log.info(
        f"Session {session_id}: {len(result.succeeded)} placed, {len(result.failed)} failed"
    )
    return result


def allocate_seats(
    db: Session,
    principal: auth.Principal,
    exam_id: Optional[int] = None,
    session_id: Optional[int] = None,
    filters: Optional[StudentFilters] = None,
    options: Optional[AllocationOptions] = None,
    rng: Optional[random.Random] = None,
) -> AllocationResult:
    if (exam_id is None) == (session_id is None):
        raise SeatAllocationError("give exactly one of an exam or a session")
    if exam_id is not None:
        return allocate_seats_for_exam(db, principal, exam_id, filters, options, rng)
    return allocate_seats_to_session(db, principal, session_id, filters, options)
