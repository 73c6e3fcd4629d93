"""Console error taxonomy.

Every failure the console can report to the operator is a ``ConsoleError``
carrying a human-readable message and the HTTP status the console API
answers with.
"""
from typing import Optional

from fastapi import status

from . import messages


class ConsoleError(Exception):
    """Base class for errors surfaced to the operator."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = messages.GENERIC_ERROR

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        upstream_status: Optional[int] = None,
    ):
        self.message = message or self.default_message
        self.upstream_status = upstream_status
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__


# Transport-level failures raised by the backend client

class BackendError(ConsoleError):
    """Non-2xx response or ``success: false`` envelope from the backend."""
    status_code = status.HTTP_502_BAD_GATEWAY


class BackendUnavailableError(BackendError):
    default_message = messages.BACKEND_UNAVAILABLE


class RateLimitedError(BackendError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = messages.RATE_LIMITED


class SessionExpiredError(BackendError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = messages.SESSION_EXPIRED


class RequestTimeoutError(ConsoleError, TimeoutError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    default_message = messages.REQUEST_TIMEOUT


# Remote operation failures

class FetchError(ConsoleError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = messages.FETCH_FAILED


class PreviewFetchError(ConsoleError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = messages.PREVIEW_FAILED


class CommitError(ConsoleError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = messages.CANCEL_FAILED


class RestoreError(ConsoleError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = messages.RESTORE_FAILED


# Local rule violations

class ReasonRequiredError(ConsoleError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = messages.REASON_REQUIRED


class InvalidTransitionError(ConsoleError):
    status_code = status.HTTP_409_CONFLICT
    default_message = messages.INVALID_TRANSITION


class WorkflowBusyError(ConsoleError):
    status_code = status.HTTP_409_CONFLICT
    default_message = messages.WORKFLOW_BUSY


class AssignmentNotFoundError(ConsoleError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = messages.ASSIGNMENT_NOT_FOUND


def wrap_remote_error(exc: ConsoleError, error_cls: type) -> ConsoleError:
    """Re-type a transport error as an operation error, keeping its message.

    Timeouts and rate limits keep their own type so callers can tell them
    apart from ordinary server failures.
    """
    if isinstance(exc, (RequestTimeoutError, RateLimitedError, SessionExpiredError)):
        return exc
    if isinstance(exc, BackendError) and not isinstance(exc, BackendUnavailableError):
        message = exc.message if exc.message != exc.default_message else None
    else:
        message = None
    wrapped = error_cls(message, upstream_status=exc.upstream_status)
    if error_cls is CommitError and exc.upstream_status == status.HTTP_409_CONFLICT:
        wrapped.status_code = status.HTTP_409_CONFLICT
    return wrapped
