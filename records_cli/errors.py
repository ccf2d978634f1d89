"""Error taxonomy shared by every core operation.

Core functions raise these and nothing else for expected failures. The CLI
decides how each kind is shown and which exit code it gets.
"""

from enum import Enum


class ErrorKind(Enum):
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    INVARIANT_VIOLATION = "invariant_violation"
    CONFLICT = "conflict"
    SYSTEM_FAILURE = "system_failure"


class RecordsError(Exception):
    kind: ErrorKind = ErrorKind.SYSTEM_FAILURE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class NotFoundError(RecordsError):
    kind = ErrorKind.NOT_FOUND


class UnauthorizedError(RecordsError):
    kind = ErrorKind.UNAUTHORIZED


class InvariantViolation(RecordsError):
    kind = ErrorKind.INVARIANT_VIOLATION


class ConflictError(RecordsError):
    kind = ErrorKind.CONFLICT


class SystemFailure(RecordsError):
    kind = ErrorKind.SYSTEM_FAILURE


class EligibilityError(InvariantViolation):
    pass


class ReconciliationError(InvariantViolation):
    pass


class ScoreError(InvariantViolation):
    pass


class TransitionError(InvariantViolation):
    pass


class DeletionError(InvariantViolation):
    pass


class SeatAllocationError(InvariantViolation):
    pass
