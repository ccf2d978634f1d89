import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional

from sqlalchemy.orm import Session

from records_cli import auth
from records_cli.db.config import BATCH_TIMEOUT_SECONDS
from records_cli.db.transaction import atomic
from records_cli.errors import (
    DeletionError,
    NotFoundError,
    ScoreError,
    TransitionError,
    UnauthorizedError,
)
from records_cli.grade_definitions import COMPONENT_CEILINGS, grade_components
from records_cli.models import Registration, Score
from records_cli.utils.logging_config import get_logger

logger = get_logger(__name__)

SCORE_CONFLICT = "a score already exists for this registration"


class ScoreState(Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    EXAMINER_APPROVED = "examiner_approved"
    HOD_ACCEPTED = "hod_accepted"


def score_state(score: Optional[Score]) -> ScoreState:
    if score is None or all(
        getattr(score, name) is None for name in COMPONENT_CEILINGS
    ):
        return ScoreState.DRAFT
    if score.is_accepted_by_hod:
        return ScoreState.HOD_ACCEPTED
    if score.is_approved_by_examiner:
        return ScoreState.EXAMINER_APPROVED
    return ScoreState.SUBMITTED


@dataclass
class ScoreEntry:
    registration_id: int
    components: Dict[str, Optional[float]] = field(default_factory=dict)


def validate_components(components: Mapping[str, Optional[float]]) -> None:
    """Every component must be a known name with a value in [0, ceiling] or None."""
    for name, value in components.items():
        if name not in COMPONENT_CEILINGS:
            raise ScoreError(f"unknown score component '{name}'")
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ScoreError(f"{name} must be a number")
        ceiling = COMPONENT_CEILINGS[name]
        if math.isnan(value) or value < 0 or value > ceiling:
            raise ScoreError(f"{name} must be between 0 and {ceiling:g}, got {value}")


def _clear_approvals(score: Score) -> None:
    score.is_approved_by_examiner = False
    score.examiner_id = None
    score.examiner_approved_at = None
    score.is_accepted_by_hod = False
    score.hod_id = None
    score.hod_accepted_at = None


def _lecturer_id(principal: auth.Principal) -> Optional[int]:
    return principal.id if isinstance(principal, auth.Lecturer) else None


def _apply_score(
    db: Session,
    registration_id: int,
    components: Mapping[str, Optional[float]],
    principal: auth.Principal,
) -> Score:
    registration = (
        db.query(Registration).filter(Registration.id == registration_id).first()
    )
    if not registration:
        raise NotFoundError(f"registration {registration_id} not found")

    auth.can_submit_score(db, principal, registration).require()
    if registration.semester.are_lecturer_score_edits_locked and not auth.is_privileged(
        principal
    ):
        raise UnauthorizedError(
            f"score edits for {registration.semester.name} are locked"
        )

    score = registration.score
    if score is not None and score.is_accepted_by_hod and not isinstance(
        principal, auth.Admin
    ):
        raise TransitionError(
            "score is finalized by the HOD and can only be modified by an admin"
        )

    validate_components(components)

    merged = {
        name: getattr(score, name) if score else None for name in COMPONENT_CEILINGS
    }
    merged.update(components)

    if score is None:
        score = Score(registration_id=registration.id)
        db.add(score)
        registration.score = score
        registration.has_score = True

    score.first_ca = merged["first_ca"]
    score.second_ca = merged["second_ca"]
    score.exam_score = merged["exam_score"]

    if all(value is None for value in merged.values()):
        score.total_score = None
        score.grade = None
        score.point = None
        score.credit_points = None
    else:
        result = grade_components(merged, registration.course.credit_unit)
        score.total_score = result.total_score
        score.grade = result.grade
        score.point = result.point
        score.credit_points = result.credit_points

    score.submitted_by_id = _lecturer_id(principal)
    score.submitted_at = datetime.now()
    _clear_approvals(score)
    return score


def submit_or_update_score(
    db: Session,
    registration_id: int,
    components: Mapping[str, Optional[float]],
    principal: auth.Principal,
) -> Score:
    """
    Create or update the score for a registration.

    Keys missing from ``components`` keep their stored value and a value of
    None clears that component. Any change sends the score back to the
    submitted state.
    """
    with atomic(db, conflict=SCORE_CONFLICT):
        score = _apply_score(db, registration_id, components, principal)
        db.flush()

    logger.info(
        f"Score for registration {registration_id} saved: total={score.total_score} grade={score.grade}"
    )
    return score


def submit_scores_batch(
    db: Session, entries: Iterable[ScoreEntry], principal: auth.Principal
) -> List[Score]:
    """Apply several submissions as one unit; the first failure discards them all."""
    entries = list(entries)
    with atomic(db, conflict=SCORE_CONFLICT, timeout=BATCH_TIMEOUT_SECONDS):
        scores = [
            _apply_score(db, entry.registration_id, entry.components, principal)
            for entry in entries
        ]
        db.flush()

    logger.info(f"Saved {len(scores)} scores in one batch")
    return scores


def _load_score(db: Session, score_id: int) -> Score:
    score = db.query(Score).filter(Score.id == score_id).first()
    if not score:
        raise NotFoundError(f"score {score_id} not found")
    return score


def _department_id(score: Score) -> int:
    return score.registration.student.department_id


def approve_by_examiner(db: Session, score_id: int, principal: auth.Principal) -> Score:
    with atomic(db):
        score = _load_score(db, score_id)
        auth.can_approve(principal, _department_id(score)).require()
        if score_state(score) == ScoreState.DRAFT:
            raise TransitionError("score has no marks to approve")
        if score.is_approved_by_examiner:
            raise TransitionError("score is already approved by the examiner")

        score.is_approved_by_examiner = True
        score.examiner_id = _lecturer_id(principal)
        score.examiner_approved_at = datetime.now()

    logger.info(f"Score {score_id} approved by examiner")
    return score


def accept_by_hod(db: Session, score_id: int, principal: auth.Principal) -> Score:
    with atomic(db):
        score = _load_score(db, score_id)
        auth.can_accept(principal, _department_id(score)).require()
        if not score.is_approved_by_examiner:
            raise TransitionError("examiner approval required first")
        if score.is_accepted_by_hod:
            raise TransitionError("score is already accepted by the HOD")

        score.is_accepted_by_hod = True
        score.hod_id = _lecturer_id(principal)
        score.hod_accepted_at = datetime.now()

    logger.info(f"Score {score_id} accepted by HOD")
    return score


def deapprove(db: Session, score_id: int, principal: auth.Principal) -> Score:
    with atomic(db):
        score = _load_score(db, score_id)
        auth.can_deapprove(principal, _department_id(score)).require()
        if score.is_accepted_by_hod:
            raise TransitionError("score is accepted by the HOD, de-accept first")
        if not score.is_approved_by_examiner:
            raise TransitionError("score is not approved")

        score.is_approved_by_examiner = False
        score.examiner_id = None
        score.examiner_approved_at = None

    logger.info(f"Score {score_id} de-approved")
    return score


def deaccept(db: Session, score_id: int, principal: auth.Principal) -> Score:
    with atomic(db):
        score = _load_score(db, score_id)
        auth.can_deaccept(principal, _department_id(score)).require()
        if not score.is_accepted_by_hod:
            raise TransitionError("score is not accepted")

        score.is_accepted_by_hod = False
        score.hod_id = None
        score.hod_accepted_at = None

    logger.info(f"Score {score_id} de-accepted")
    return score


def _delete(db: Session, score_id: int, principal: auth.Principal) -> None:
    score = _load_score(db, score_id)
    registration = score.registration
    department_id = registration.student.department_id
    auth.can_delete_score(principal, department_id).require()

    is_admin = isinstance(principal, auth.Admin)
    is_hod = (
        isinstance(principal, auth.Lecturer)
        and principal.role == "HOD"
        and principal.department_id == department_id
    )
    if score.is_accepted_by_hod and not is_admin:
        raise DeletionError(f"score {score_id} is accepted and can only be deleted by an admin")
    if score.is_approved_by_examiner and not (is_admin or is_hod):
        raise DeletionError(
            f"score {score_id} is approved and can only be deleted by an admin "
            "or the head of department"
        )

    registration.has_score = False
    db.delete(score)


def delete_score(db: Session, score_id: int, principal: auth.Principal) -> None:
    with atomic(db):
        _delete(db, score_id, principal)

    logger.info(f"Score {score_id} deleted")


def delete_scores_batch(
    db: Session, score_ids: Iterable[int], principal: auth.Principal
) -> int:
    """Delete several scores as one unit; a blocked or missing score keeps them all."""
    score_ids = list(dict.fromkeys(score_ids))
    if not score_ids:
        raise DeletionError("no score ids given")

    with atomic(db, timeout=BATCH_TIMEOUT_SECONDS):
        for score_id in score_ids:
            _delete(db, score_id, principal)

    logger.info(f"Deleted {len(score_ids)} scores in one batch")
    return len(score_ids)
