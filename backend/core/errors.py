"""Error taxonomy shared by the session, validation and report layers."""
from __future__ import annotations


class RecordCheckError(Exception):
    """Base class for domain errors translated at the HTTP edge."""

    status_code = 500


class NotFoundError(RecordCheckError):
    """Unknown session, file or validation id."""

    status_code = 404


class ValidationFailure(RecordCheckError):
    """A validator failed unrecoverably for a single file."""

    status_code = 500


class RateLimitedError(RecordCheckError):
    """Caller must back off before polling again."""

    status_code = 429

    def __init__(self, message: str = "too many requests", *, retry_after: float = 5.0) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class PollingTimeout(RecordCheckError):
    """Client-side polling ceiling reached without a terminal status."""

    status_code = 504


class ExportFailure(RecordCheckError):
    """A report request referenced an unknown result id."""

    status_code = 404


class InvalidTransition(RecordCheckError):
    """A file or result status was asked to move backwards."""

    status_code = 409


class SessionLimitExceeded(RecordCheckError):
    """Upload would push a session past its file limit."""

    status_code = 400
