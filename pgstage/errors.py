"""Error taxonomy shared by the registry and the operation handlers."""

from __future__ import annotations


class PgStageError(Exception):
    """Base class for errors reported back to the caller as an envelope."""

    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PgStageError):
    """A statement was submitted to the wrong execution mode."""

    code = "validation_error"


class NotFoundError(PgStageError):
    code = "not_found"

    def __init__(self, transaction_id: str) -> None:
        super().__init__(f"Transaction not found or already finished: {transaction_id}")
        self.transaction_id = transaction_id


class ConcurrencyLimitError(PgStageError):
    code = "concurrency_limit"

    def __init__(self, limit: int) -> None:
        super().__init__(
            f"Maximum number of concurrent transactions ({limit}) reached. "
            "Commit or roll back an open transaction and try again."
        )
        self.limit = limit


class ExecutionError(PgStageError):
    """The database rejected a statement, commit or rollback."""

    code = "execution_error"


class ReleaseError(PgStageError):
    """Returning a connection to its pool failed. Logged, never raised to callers."""

    code = "release_error"
