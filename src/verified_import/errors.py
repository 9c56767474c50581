"""
Exception hierarchy for verified imports.

Every failure an import session can hit falls into one of four
categories, each with its own handling:

- transient: network, timeout, throttling -> bounded retry
- rejected: the destination refused the request -> abort, no retry
- ambiguous: the remote state is unknown -> escalate to the operator
- local: invalid input detected before any remote call -> reject
"""

from enum import Enum

from utils.retry import is_retryable_exception


class ErrorCategory(str, Enum):
    TRANSIENT = "transient"
    REJECTED = "rejected"
    AMBIGUOUS = "ambiguous"
    LOCAL = "local"
    CANCELLED = "cancelled"


class ImportVerificationError(Exception):
    """Base class for all import and verification errors."""

    category = ErrorCategory.REJECTED


class TransientRemoteError(ImportVerificationError):
    """Network failure, timeout or throttling; safe to retry."""

    category = ErrorCategory.TRANSIENT


class JobTimeoutError(TransientRemoteError):
    """A remote job did not complete within the polling bound."""

    def __init__(self, job_id: str, polls: int):
        self.job_id = job_id
        self.polls = polls
        super().__init__(f"Job {job_id} did not complete after {polls} polls")


class RemoteRejectedError(ImportVerificationError):
    """The destination rejected the request (schema, permission, invalid data)."""

    def __init__(self, message: str, code: str | int | None = None):
        self.code = code
        super().__init__(message)


class AmbiguousStateError(ImportVerificationError):
    """The remote state cannot be determined; a human has to decide."""

    category = ErrorCategory.AMBIGUOUS


class LocalPreconditionError(ImportVerificationError, ValueError):
    """Invalid local input, detected before any remote call."""

    category = ErrorCategory.LOCAL


class SessionCancelledError(ImportVerificationError):
    """The session was cancelled between two remote steps."""

    category = ErrorCategory.CANCELLED


class TableLeaseError(ImportVerificationError):
    """Another session currently owns the destination table."""

    category = ErrorCategory.LOCAL

    def __init__(self, table_id: str, owner: str, expires_at: str):
        self.table_id = table_id
        self.owner = owner
        self.expires_at = expires_at
        super().__init__(
            f"Table {table_id} is leased by {owner} until {expires_at}"
        )


def classify_error(exc: BaseException) -> ErrorCategory:
    """
    Map an exception to the handling category

    Errors from this package carry their category; foreign exceptions
    (client library, asyncio, OS) are classified by type and message.

    Args:
        exc: Exception raised by a remote call or local check

    Returns:
        ErrorCategory
    """
    if isinstance(exc, ImportVerificationError):
        return exc.category
    if isinstance(exc, ValueError):
        return ErrorCategory.LOCAL
    if isinstance(exc, Exception) and is_retryable_exception(exc):
        return ErrorCategory.TRANSIENT
    return ErrorCategory.REJECTED


def is_transient(exc: Exception) -> bool:
    return classify_error(exc) is ErrorCategory.TRANSIENT
