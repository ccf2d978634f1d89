import pytest

from records_cli.commands.scores.lifecycle import (
    ScoreEntry,
    ScoreState,
    accept_by_hod,
    approve_by_examiner,
    deaccept,
    deapprove,
    delete_score,
    delete_scores_batch,
    score_state,
    submit_or_update_score,
    submit_scores_batch,
)
from records_cli.errors import (
    DeletionError,
    NotFoundError,
    ScoreError,
    TransitionError,
    UnauthorizedError,
)
from records_cli.models import Registration, Score

FULL_MARKS = {"first_ca": 28, "second_ca": 25, "exam_score": 40}


@pytest.fixture
def registration(make_registration):
    return make_registration("CSC202")


@pytest.fixture
def accepted_score(db, catalog, registration):
    score = submit_or_update_score(db, registration.id, FULL_MARKS, catalog.admin)
    approve_by_examiner(db, score.id, catalog.examiner)
    accept_by_hod(db, score.id, catalog.hod)
    return score


def test_submission_computes_grade_and_credit_points(db, catalog, registration):
    score = submit_or_update_score(db, registration.id, FULL_MARKS, catalog.admin)

    assert score.total_score == 93
    assert score.grade == "A"
    assert score.point == 5.0
    assert score.credit_points == 15.0
    assert score_state(score) == ScoreState.SUBMITTED
    assert db.get(Registration, registration.id).has_score is True


def test_total_is_capped_at_one_hundred(db, catalog, registration):
    score = submit_or_update_score(
        db,
        registration.id,
        {"first_ca": 30, "second_ca": 30, "exam_score": 70},
        catalog.admin,
    )
    assert score.total_score == 100


def test_absent_components_keep_stored_values(db, catalog, registration):
    submit_or_update_score(db, registration.id, {"first_ca": 20}, catalog.admin)
    score = submit_or_update_score(db, registration.id, {"exam_score": 50}, catalog.admin)

    assert score.first_ca == 20
    assert score.total_score == 70
    assert score.grade == "A"
    assert db.query(Score).count() == 1


def test_none_clears_a_component(db, catalog, registration):
    submit_or_update_score(db, registration.id, {"first_ca": 20, "exam_score": 50}, catalog.admin)
    score = submit_or_update_score(db, registration.id, {"first_ca": None}, catalog.admin)

    assert score.first_ca is None
    assert score.total_score == 50
    assert score.grade == "C"
    assert score.credit_points == 9.0


@pytest.mark.parametrize(
    "components",
    [
        {"exam_score": 71},
        {"first_ca": -1},
        {"second_ca": 30.5},
        {"first_ca": "ten"},
        {"practical": 10},
    ],
)
def test_invalid_components_are_rejected(db, catalog, registration, components):
    with pytest.raises(ScoreError):
        submit_or_update_score(db, registration.id, components, catalog.admin)
    assert db.query(Score).count() == 0
    assert db.get(Registration, registration.id).has_score is False


def test_edit_resets_approvals(db, catalog, registration, accepted_score):
    score = submit_or_update_score(db, registration.id, {"exam_score": 30}, catalog.admin)

    assert score.is_approved_by_examiner is False
    assert score.examiner_id is None
    assert score.examiner_approved_at is None
    assert score.is_accepted_by_hod is False
    assert score.hod_id is None
    assert score.hod_accepted_at is None
    assert score_state(score) == ScoreState.SUBMITTED


def test_accept_requires_examiner_approval(db, catalog, registration):
    score = submit_or_update_score(db, registration.id, FULL_MARKS, catalog.admin)

    with pytest.raises(TransitionError, match="examiner approval required first"):
        accept_by_hod(db, score.id, catalog.hod)
    assert db.get(Score, score.id).is_accepted_by_hod is False


def test_full_approval_chain_and_reversal(db, catalog, registration):
    score = submit_or_update_score(db, registration.id, FULL_MARKS, catalog.lecturer)
    assert score.submitted_by_id == catalog.lecturer.id

    score = approve_by_examiner(db, score.id, catalog.examiner)
    assert score.examiner_id == catalog.examiner.id
    assert score_state(score) == ScoreState.EXAMINER_APPROVED

    score = accept_by_hod(db, score.id, catalog.hod)
    assert score.hod_id == catalog.hod.id
    assert score_state(score) == ScoreState.HOD_ACCEPTED

    with pytest.raises(TransitionError, match="de-accept first"):
        deapprove(db, score.id, catalog.examiner)

    score = deaccept(db, score.id, catalog.hod)
    assert score_state(score) == ScoreState.EXAMINER_APPROVED
    assert score.hod_id is None and score.hod_accepted_at is None
    assert score.examiner_id == catalog.examiner.id

    score = deapprove(db, score.id, catalog.hod)
    assert score_state(score) == ScoreState.SUBMITTED


def test_repeated_transitions_are_rejected(db, catalog, accepted_score):
    with pytest.raises(TransitionError):
        approve_by_examiner(db, accepted_score.id, catalog.examiner)
    with pytest.raises(TransitionError):
        accept_by_hod(db, accepted_score.id, catalog.hod)


def test_reversals_need_the_forward_state(db, catalog, registration):
    score = submit_or_update_score(db, registration.id, FULL_MARKS, catalog.admin)

    with pytest.raises(TransitionError):
        deapprove(db, score.id, catalog.admin)
    with pytest.raises(TransitionError):
        deaccept(db, score.id, catalog.admin)


def test_draft_score_cannot_be_approved(db, catalog, registration):
    score = submit_or_update_score(db, registration.id, {"first_ca": None}, catalog.admin)

    assert score_state(score) == ScoreState.DRAFT
    assert score.grade is None
    with pytest.raises(TransitionError):
        approve_by_examiner(db, score.id, catalog.admin)


def test_only_department_roles_may_approve_and_accept(db, catalog, registration):
    score = submit_or_update_score(db, registration.id, FULL_MARKS, catalog.admin)

    for principal in (catalog.hod, catalog.lecturer, catalog.outsider, catalog.as_student, catalog.helpdesk):
        with pytest.raises(UnauthorizedError):
            approve_by_examiner(db, score.id, principal)

    approve_by_examiner(db, score.id, catalog.registrar)
    for principal in (catalog.examiner, catalog.outsider):
        with pytest.raises(UnauthorizedError):
            accept_by_hod(db, score.id, principal)


def test_untimetabled_lecturer_may_not_submit(db, catalog, make_registration):
    other = make_registration("CSC203")

    with pytest.raises(UnauthorizedError):
        submit_or_update_score(db, other.id, FULL_MARKS, catalog.lecturer)

    score = submit_or_update_score(db, other.id, FULL_MARKS, catalog.examiner)
    assert score.grade == "A"


def test_lecturer_score_lock(db, catalog, registration):
    catalog.semesters["first"].are_lecturer_score_edits_locked = True
    db.commit()

    with pytest.raises(UnauthorizedError, match="locked"):
        submit_or_update_score(db, registration.id, FULL_MARKS, catalog.lecturer)

    score = submit_or_update_score(db, registration.id, FULL_MARKS, catalog.registrar)
    assert score.total_score == 93


def test_delete_submitted_score_resets_registration(db, catalog, registration):
    score = submit_or_update_score(db, registration.id, FULL_MARKS, catalog.lecturer)

    delete_score(db, score.id, catalog.examiner)

    assert db.query(Score).count() == 0
    assert db.get(Registration, registration.id).has_score is False


def test_timetabled_lecturer_may_not_delete(db, catalog, registration):
    score = submit_or_update_score(db, registration.id, FULL_MARKS, catalog.admin)

    with pytest.raises(UnauthorizedError):
        delete_score(db, score.id, catalog.lecturer)
    with pytest.raises(UnauthorizedError):
        delete_score(db, score.id, catalog.outsider)

    assert db.query(Score).count() == 1
    assert db.get(Registration, registration.id).has_score is True


def test_accepted_score_is_finalized_for_non_admins(db, catalog, registration, accepted_score):
    for principal in (catalog.lecturer, catalog.examiner, catalog.hod, catalog.registrar):
        with pytest.raises(TransitionError, match="finalized"):
            submit_or_update_score(db, registration.id, {"exam_score": 10}, principal)

    score = db.get(Score, accepted_score.id)
    assert score.exam_score == 40
    assert score.grade == "A"
    assert score_state(score) == ScoreState.HOD_ACCEPTED


def test_admin_edit_of_accepted_score_resets_both_approvals(db, catalog, registration, accepted_score):
    score = submit_or_update_score(db, registration.id, {"exam_score": 10}, catalog.admin)

    assert score.total_score == 63
    assert score.grade == "B"
    assert score.is_approved_by_examiner is False
    assert score.is_accepted_by_hod is False


def test_batch_delete_resets_every_registration(db, catalog, make_registration):
    first = make_registration("CSC202")
    second = make_registration("CSC203")
    scores = submit_scores_batch(
        db,
        [ScoreEntry(first.id, FULL_MARKS), ScoreEntry(second.id, {"exam_score": 50})],
        catalog.admin,
    )

    deleted = delete_scores_batch(db, [s.id for s in scores] + [scores[0].id], catalog.examiner)

    assert deleted == 2
    assert db.query(Score).count() == 0
    assert db.get(Registration, first.id).has_score is False
    assert db.get(Registration, second.id).has_score is False


def test_batch_delete_is_all_or_nothing(db, catalog, make_registration, accepted_score):
    other = make_registration("CSC203")
    loose = submit_or_update_score(db, other.id, FULL_MARKS, catalog.admin)

    with pytest.raises(DeletionError):
        delete_scores_batch(db, [loose.id, accepted_score.id], catalog.hod)

    assert db.query(Score).count() == 2
    assert db.get(Registration, other.id).has_score is True


def test_batch_delete_needs_ids_and_permission(db, catalog, registration):
    score = submit_or_update_score(db, registration.id, FULL_MARKS, catalog.admin)

    with pytest.raises(DeletionError):
        delete_scores_batch(db, [], catalog.admin)
    with pytest.raises(UnauthorizedError):
        delete_scores_batch(db, [score.id], catalog.lecturer)
    with pytest.raises(NotFoundError):
        delete_scores_batch(db, [score.id, 999], catalog.admin)

    assert db.query(Score).count() == 1


def test_delete_approved_score_needs_admin_or_hod(db, catalog, registration):
    score = submit_or_update_score(db, registration.id, FULL_MARKS, catalog.admin)
    approve_by_examiner(db, score.id, catalog.examiner)

    with pytest.raises(DeletionError):
        delete_score(db, score.id, catalog.examiner)

    delete_score(db, score.id, catalog.hod)
    assert db.query(Score).count() == 0


def test_delete_accepted_score_needs_admin(db, catalog, accepted_score):
    with pytest.raises(DeletionError):
        delete_score(db, accepted_score.id, catalog.hod)

    delete_score(db, accepted_score.id, catalog.admin)
    assert db.query(Score).count() == 0


def test_batch_submission(db, catalog, make_registration):
    first = make_registration("CSC202")
    second = make_registration("CSC203")

    scores = submit_scores_batch(
        db,
        [
            ScoreEntry(first.id, {"exam_score": 62}),
            ScoreEntry(second.id, {"first_ca": 15, "exam_score": 27}),
        ],
        catalog.admin,
    )

    assert [s.grade for s in scores] == ["B", "E"]


def test_batch_is_all_or_nothing(db, catalog, make_registration):
    first = make_registration("CSC202")
    second = make_registration("CSC203")

    with pytest.raises(ScoreError):
        submit_scores_batch(
            db,
            [
                ScoreEntry(first.id, {"exam_score": 62}),
                ScoreEntry(second.id, {"exam_score": 99}),
            ],
            catalog.admin,
        )

    assert db.query(Score).count() == 0
    assert db.get(Registration, first.id).has_score is False


def test_missing_rows_are_not_found(db, catalog):
    with pytest.raises(NotFoundError):
        submit_or_update_score(db, 999, FULL_MARKS, catalog.admin)
    with pytest.raises(NotFoundError):
        approve_by_examiner(db, 999, catalog.admin)


def test_state_of_missing_score_is_draft():
    assert score_state(None) == ScoreState.DRAFT
