"""Error taxonomy for the job-lifecycle orchestrator.

Validation and launch failures are raised to the caller. Failures inside a
preview's background task are recorded on the session instead.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from jobforge.schemas.pipeline import ErrorMessage


class JobforgeError(Exception):
    """Base class for all orchestrator errors."""


class ValidationError(JobforgeError):
    """The remote compiler rejected the query. Blocks preview and start."""

    def __init__(self, errors: list[ErrorMessage]):
        self.errors = errors
        message = errors[0].message if errors else "Query validation failed"
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)


class TransportError(JobforgeError):
    """Network or protocol failure talking to the remote pipeline API."""

    def __init__(self, message: str, *, operation: str | None = None):
        self.operation = operation
        super().__init__(message)


class RemoteRejectedError(TransportError):
    """The remote API answered with a structured rejection.

    raw_message is the server's message, fit to show to the user as-is.
    """

    def __init__(
        self,
        raw_message: str,
        *,
        status_code: int | None = None,
        operation: str | None = None,
    ):
        self.raw_message = raw_message
        self.status_code = status_code
        super().__init__(raw_message, operation=operation)


class TerminalJobError(JobforgeError):
    """The job reached the Failed state."""

    def __init__(self, job_id: str, message: str | None = None):
        self.job_id = job_id
        super().__init__(message or f"Job {job_id} failed")


class PollTimeoutError(JobforgeError):
    """A status polling loop exceeded its maximum wait."""

    def __init__(self, job_id: str, waited: float, expected: str):
        self.job_id = job_id
        self.waited = waited
        self.expected = expected
        super().__init__(
            f"Job {job_id} did not reach {expected} within {waited:.0f}s"
        )


class StreamError(JobforgeError):
    """The output subscription broke before the server closed it."""

    def __init__(self, job_id: str, reason: str):
        self.job_id = job_id
        super().__init__(f"Output stream for job {job_id} failed: {reason}")


class PreviewNotActiveError(JobforgeError):
    """A preview action was requested but no preview job exists."""


class PreviewCancelledError(JobforgeError):
    """The editor was closed while its preview was still being validated or launched."""
