import functools
import json
import random
import sys
from typing import List, Optional, Tuple

import click
from sqlalchemy.orm import Session, sessionmaker

from records_cli.auth import resolve_principal
from records_cli.commands.export import export_seat_assignments
from records_cli.commands.register.eligibility import AcademicPeriod
from records_cli.commands.register.reconcile import (
    list_registrations,
    reconcile_registrations,
)
from records_cli.commands.scores.lifecycle import (
    ScoreEntry,
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
from records_cli.commands.seats.allocate import (
    AllocationOptions,
    AllocationResult,
    StudentFilters,
    allocate_seats,
)
from records_cli.commands.seats.seat_number import set_seat_number
from records_cli.commands.seats.unassign import unassign_seats
from records_cli.db.config import get_engine
from records_cli.errors import ErrorKind, RecordsError, ScoreError
from records_cli.grade_definitions import summarize_scores
from records_cli.models import Base, Registration, Score
from records_cli.utils.logging_config import configure_from_env

EXIT_CODES = {
    ErrorKind.SYSTEM_FAILURE: 1,
    ErrorKind.NOT_FOUND: 3,
    ErrorKind.UNAUTHORIZED: 4,
    ErrorKind.INVARIANT_VIOLATION: 5,
    ErrorKind.CONFLICT: 6,
}

ERROR_LABELS = {
    ErrorKind.SYSTEM_FAILURE: "System failure",
    ErrorKind.NOT_FOUND: "Not found",
    ErrorKind.UNAUTHORIZED: "Not authorized",
    ErrorKind.INVARIANT_VIOLATION: "Rejected",
    ErrorKind.CONFLICT: "Conflict",
}


def get_db() -> Session:
    engine = get_engine()
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return SessionLocal()


def handle_errors(command):
    """Print a RecordsError once and exit with the code for its kind."""

    @functools.wraps(command)
    def wrapper(*args, **kwargs):
        try:
            return command(*args, **kwargs)
        except RecordsError as e:
            message = e.message
            if e.kind == ErrorKind.SYSTEM_FAILURE:
                message = "The operation could not be completed. See the log for details."
            click.secho(f"{ERROR_LABELS[e.kind]}: {message}", fg="red", err=True)
            sys.exit(EXIT_CODES[e.kind])

    return wrapper


def principal_option(command):
    return click.option(
        "--as",
        "as_principal",
        required=True,
        help="Acting principal, e.g. admin:1, staff:3, lecturer:7, student:42",
    )(command)


def period_options(command):
    command = click.option("--season", type=int, required=True, help="Season id")(command)
    command = click.option("--semester", type=int, required=True, help="Semester id")(
        command
    )
    return command


def filter_options(command):
    command = click.option("--department", type=int, help="Only students of this department")(
        command
    )
    command = click.option("--level", type=int, help="Only students at this level")(command)
    command = click.option("--program", type=int, help="Only students of this program")(
        command
    )
    command = click.option(
        "--student", "students", type=int, multiple=True, help="Student id (repeatable)"
    )(command)
    return command


def echo_allocation(result: AllocationResult, verb: str) -> None:
    click.secho(
        f"Batch {result.batch_id}: {len(result.succeeded)} {verb}, {len(result.failed)} failed",
        fg="green" if not result.failed else "yellow",
    )
    for outcome in result.succeeded:
        click.echo(f"  student {outcome.student_id} -> session {outcome.exam_session_id}")
    for failure in result.failed:
        click.secho(f"  student {failure.student_id}: {failure.reason}", fg="yellow")


@click.group()
def cli() -> None:
    configure_from_env()


@cli.group()
def db() -> None:
    pass


@db.command(name="init")
def init_db() -> None:
    """Create all tables."""
    engine = get_engine()
    Base.metadata.create_all(engine)
    click.secho("Database tables created.", fg="green")


@cli.group()
def register() -> None:
    pass


@register.command(name="reconcile")
@click.argument("student_id", type=int)
@period_options
@click.option("--level", type=int, required=True, help="Level id of the period")
@click.option("--course", "courses", type=int, multiple=True, help="Desired course id (repeatable)")
@principal_option
@handle_errors
def reconcile_cmd(
    student_id: int,
    semester: int,
    season: int,
    level: int,
    courses: Tuple[int, ...],
    as_principal: str,
) -> None:
    """Make a student's registrations for a period match the given courses."""
    db = get_db()
    principal = resolve_principal(db, as_principal)
    period = AcademicPeriod(semester_id=semester, level_id=level, season_id=season)
    result = reconcile_registrations(db, student_id, period, list(courses), principal)

    click.secho(
        f"Registration updated: {len(result.added)} added, {len(result.removed)} removed",
        fg="green",
    )
    for course in result.added:
        click.echo(f"  + {course.code} {course.title}")
    for course in result.removed:
        click.echo(f"  - {course.code} {course.title}")


@register.command(name="show")
@click.argument("student_id", type=int)
@period_options
@handle_errors
def show_registrations(student_id: int, semester: int, season: int) -> None:
    """List a student's registrations for a period."""
    db = get_db()
    registrations = list_registrations(db, student_id, semester, season)
    if not registrations:
        click.secho("No registrations found.", fg="yellow")
        return

    total = 0
    for registration in registrations:
        total += registration.course.credit_unit
        graded = " (graded)" if registration.has_score else ""
        click.echo(
            f"{registration.course.code:<10} {registration.course.title:<40} "
            f"{registration.course.credit_unit} CU{graded}"
        )
    click.echo(f"Total: {total} credit units")


@cli.group()
def scores() -> None:
    pass


@scores.command(name="submit")
@click.argument("registration_id", type=int)
@click.option("--first-ca", type=float, help="First continuous assessment (0-30)")
@click.option("--second-ca", type=float, help="Second continuous assessment (0-30)")
@click.option("--exam", "exam_score", type=float, help="Exam mark (0-70)")
@click.option(
    "--clear",
    type=click.Choice(["first_ca", "second_ca", "exam_score"]),
    multiple=True,
    help="Component to clear (repeatable)",
)
@principal_option
@handle_errors
def submit_score(
    registration_id: int,
    first_ca: Optional[float],
    second_ca: Optional[float],
    exam_score: Optional[float],
    clear: Tuple[str, ...],
    as_principal: str,
) -> None:
    """Create or update the score for a registration."""
    components = {
        name: value
        for name, value in (
            ("first_ca", first_ca),
            ("second_ca", second_ca),
            ("exam_score", exam_score),
        )
        if value is not None
    }
    for name in clear:
        components[name] = None

    db = get_db()
    principal = resolve_principal(db, as_principal)
    score = submit_or_update_score(db, registration_id, components, principal)
    click.secho(
        f"Score {score.id}: total {score.total_score}, grade {score.grade}, "
        f"points {score.point}, credit points {score.credit_points}",
        fg="green",
    )


def _transition_command(name: str, action, done: str):
    @scores.command(name=name, help=f"Mark a score as {done}.")
    @click.argument("score_id", type=int)
    @principal_option
    @handle_errors
    def command(score_id: int, as_principal: str) -> None:
        db = get_db()
        principal = resolve_principal(db, as_principal)
        score = action(db, score_id, principal)
        click.secho(f"Score {score_id} {done} ({score_state(score).value}).", fg="green")

    return command


approve_cmd = _transition_command("approve", approve_by_examiner, "approved")
accept_cmd = _transition_command("accept", accept_by_hod, "accepted")
deapprove_cmd = _transition_command("deapprove", deapprove, "de-approved")
deaccept_cmd = _transition_command("deaccept", deaccept, "de-accepted")


@scores.command(name="delete")
@click.argument("score_id", type=int)
@principal_option
@handle_errors
def delete_score_cmd(score_id: int, as_principal: str) -> None:
    """Delete a score and mark its registration as ungraded."""
    db = get_db()
    principal = resolve_principal(db, as_principal)
    delete_score(db, score_id, principal)
    click.secho(f"Score {score_id} deleted.", fg="green")


@scores.command(name="delete-batch")
@click.argument("score_ids", type=int, nargs=-1, required=True)
@principal_option
@handle_errors
def delete_batch_cmd(score_ids: Tuple[int, ...], as_principal: str) -> None:
    """Delete several scores in one transaction."""
    db = get_db()
    principal = resolve_principal(db, as_principal)
    count = delete_scores_batch(db, score_ids, principal)
    click.secho(f"Deleted {count} scores.", fg="green")


def read_score_entries(file) -> List[ScoreEntry]:
    """
    Parse a JSON list of score entries.

    Each entry holds a ``registration_id`` plus any of the component keys,
    for example ``{"registration_id": 12, "first_ca": 20, "exam_score": 45}``.
    """
    try:
        raw = json.load(file)
    except json.JSONDecodeError as e:
        raise ScoreError(f"score file is not valid JSON: {e.msg}")

    if not isinstance(raw, list):
        raise ScoreError("score file must hold a list of entries")

    entries = []
    for position, item in enumerate(raw, 1):
        if not isinstance(item, dict) or "registration_id" not in item:
            raise ScoreError(f"entry {position} has no registration_id")
        registration_id = item["registration_id"]
        if isinstance(registration_id, bool) or not isinstance(registration_id, int):
            raise ScoreError(f"entry {position} has an invalid registration_id")
        components = {k: v for k, v in item.items() if k != "registration_id"}
        entries.append(ScoreEntry(registration_id, components))
    return entries


@scores.command(name="submit-batch")
@click.argument("file", type=click.File("r"))
@principal_option
@handle_errors
def submit_batch_cmd(file, as_principal: str) -> None:
    """Submit scores from a JSON file; any bad entry discards the whole file."""
    entries = read_score_entries(file)
    if not entries:
        click.secho("No score entries found.", fg="yellow")
        return

    db = get_db()
    principal = resolve_principal(db, as_principal)
    saved = submit_scores_batch(db, entries, principal)
    click.secho(f"Saved {len(saved)} scores.", fg="green")
    for score in saved:
        click.echo(
            f"  registration {score.registration_id}: total {score.total_score}, "
            f"grade {score.grade}"
        )


@scores.command(name="summary")
@click.argument("student_id", type=int)
@click.option("--semester", type=int, required=True, help="Semester id")
@click.option("--season", type=int, required=True, help="Season id")
@handle_errors
def score_summary(student_id: int, semester: int, season: int) -> None:
    """Credit units, credit points and GPA for a student's period."""
    db = get_db()
    rows = (
        db.query(Score)
        .join(Registration, Registration.id == Score.registration_id)
        .filter(
            Registration.student_id == student_id,
            Registration.semester_id == semester,
            Registration.season_id == season,
        )
        .all()
    )
    if not rows:
        click.secho("No scores found.", fg="yellow")
        return

    for score in rows:
        click.echo(
            f"{score.registration.course.code:<10} {score.total_score!s:>6} "
            f"{score.grade or '-':<2} {score_state(score).value}"
        )
    summary = summarize_scores(rows)
    click.echo(
        f"Credit units: {summary.credit_units}  Credit points: {summary.credit_points:.1f}  "
        f"GPA: {summary.gpa:.2f}"
    )


@cli.group()
def seats() -> None:
    pass


@seats.command(name="allocate")
@click.option("--exam", "exam_id", type=int, help="Distribute across the exam's sessions")
@click.option("--session", "session_id", type=int, help="Place into this session")
@filter_options
@click.option("--overwrite", is_flag=True, help="Move students who already hold a seat")
@click.option("--seed", type=int, help="Seed for the shuffle")
@principal_option
@handle_errors
def allocate_cmd(
    exam_id: Optional[int],
    session_id: Optional[int],
    students: Tuple[int, ...],
    program: Optional[int],
    level: Optional[int],
    department: Optional[int],
    overwrite: bool,
    seed: Optional[int],
    as_principal: str,
) -> None:
    """Assign eligible students to exam sessions."""
    db = get_db()
    principal = resolve_principal(db, as_principal)
    result = allocate_seats(
        db,
        principal,
        exam_id=exam_id,
        session_id=session_id,
        filters=StudentFilters(list(students), program, level, department),
        options=AllocationOptions(overwrite_existing=overwrite),
        rng=random.Random(seed) if seed is not None else None,
    )
    echo_allocation(result, "placed")


@seats.command(name="unassign")
@click.option("--exam", "exam_id", type=int, help="Remove seats for the whole exam")
@click.option("--session", "session_id", type=int, help="Remove seats in this session")
@filter_options
@principal_option
@handle_errors
def unassign_cmd(
    exam_id: Optional[int],
    session_id: Optional[int],
    students: Tuple[int, ...],
    program: Optional[int],
    level: Optional[int],
    department: Optional[int],
    as_principal: str,
) -> None:
    """Remove seat assignments that have no exam attempt."""
    db = get_db()
    principal = resolve_principal(db, as_principal)
    result = unassign_seats(
        db,
        principal,
        exam_id=exam_id,
        session_id=session_id,
        filters=StudentFilters(list(students), program, level, department),
    )
    echo_allocation(result, "unassigned")


@seats.command(name="seat")
@click.argument("assignment_id", type=int)
@click.argument("seat_number", required=False)
@principal_option
@handle_errors
def seat_cmd(assignment_id: int, seat_number: Optional[str], as_principal: str) -> None:
    """Set a seat label, or clear it when none is given."""
    db = get_db()
    principal = resolve_principal(db, as_principal)
    assignment = set_seat_number(db, assignment_id, seat_number, principal)
    click.secho(
        f"Assignment {assignment_id} seat: {assignment.seat_number or '(none)'}",
        fg="green",
    )


@cli.group()
def export() -> None:
    pass


@export.command(name="seats")
@click.argument("exam_id", type=int)
@click.option("--output-dir", default="exports", show_default=True)
@principal_option
@handle_errors
def export_seats(exam_id: int, output_dir: str, as_principal: str) -> None:
    """Export an exam's seat assignments to Excel."""
    db = get_db()
    principal = resolve_principal(db, as_principal)
    path = export_seat_assignments(db, exam_id, principal, output_dir)
    click.secho(f"Exported seat assignments to: {path}", fg="green")


if __name__ == "__main__":
    cli()
