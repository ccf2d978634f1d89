from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from records_cli.errors import ConflictError, RecordsError, SystemFailure
from records_cli.utils.logging_config import get_logger

logger = get_logger(__name__)


@contextmanager
def atomic(
    db: Session,
    conflict: str = "record already exists",
    timeout: Optional[int] = None,
) -> Iterator[Session]:
    """
    Run a block as one unit of work on ``db``.

    Commits when the block finishes and rolls back on any exception. Unique
    constraint violations surface as ConflictError carrying ``conflict``;
    other database errors surface as SystemFailure with the cause logged.

    Args:
        db: Session to commit or roll back
        conflict: Message for ConflictError on IntegrityError
        timeout: Statement timeout in seconds (PostgreSQL only)
    """
    try:
        if timeout and db.get_bind().dialect.name == "postgresql":
            db.execute(text(f"SET LOCAL statement_timeout = {int(timeout) * 1000}"))
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Integrity error, rolled back: {e.orig}")
        raise ConflictError(conflict) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error, rolled back: {str(e)}", exc_info=True)
        raise SystemFailure("database operation failed") from e
    except RecordsError:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.error("Unexpected error, rolled back", exc_info=True)
        raise
