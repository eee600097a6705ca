"""reportd · Unified Error Hierarchy.

All custom exceptions inherit from ReportdError, which carries an
error_code and optional details dict for programmatic handling.

Usage::

    from reportd.core.errors import NotFoundError, StorageError

    raise NotFoundError("Schedule not found: daily", details={"schedule_id": "daily"})
    raise StorageError("Could not write index", error_code="HISTORY_WRITE_FAILED")

Outcome mapping for host layers (CLI, API):
    NotFoundError   -> "not found"
    ValidationError -> "validation"
    StorageError    -> "storage"
"""

from __future__ import annotations


class ReportdError(Exception):
    """Base exception for all reportd errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "REPORTD_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class ValidationError(ReportdError):
    """Malformed input (missing schedule fields, unsafe ids, bad patches)."""

    def __init__(
        self,
        message: str,
        error_code: str = "VALIDATION_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class InvalidScheduleError(ValidationError):
    """Cron expression or timezone cannot be turned into a trigger."""

    def __init__(
        self,
        message: str,
        error_code: str = "INVALID_SCHEDULE",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class NotFoundError(ReportdError):
    """Unknown schedule or report id."""

    def __init__(
        self,
        message: str,
        error_code: str = "NOT_FOUND",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class StorageError(ReportdError):
    """Persistence I/O failure (schedule files, history index)."""

    def __init__(
        self,
        message: str,
        error_code: str = "STORAGE_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class PipelineError(ReportdError):
    """A pipeline step failed; the current run is aborted without a record."""

    def __init__(
        self,
        message: str,
        error_code: str = "PIPELINE_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class DataSourceError(PipelineError):
    """Data source missing, unreadable or of an unsupported type."""

    def __init__(
        self,
        message: str,
        error_code: str = "DATA_SOURCE_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class RenderError(PipelineError):
    """The report renderer could not produce an artifact."""

    def __init__(
        self,
        message: str,
        error_code: str = "RENDER_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)


class NotificationError(ReportdError):
    """Mail delivery failed. Never escapes the pipeline."""

    def __init__(
        self,
        message: str,
        error_code: str = "NOTIFICATION_ERROR",
        details: dict | None = None,
    ) -> None:
        super().__init__(message, error_code=error_code, details=details)
