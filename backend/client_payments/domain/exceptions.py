"""Domain-specific exceptions — framework-independent.

Every records error carries a stable machine-readable ``code`` and the HTTP
status the presentation layer should answer with.
"""

from datetime import datetime


class RecordsError(Exception):
    """Base class for errors surfaced to records API callers."""

    code = "records_error"
    http_status = 500

    def __init__(self, message: str, code: str | None = None, http_status: int | None = None):
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        super().__init__(message)


class RecordsValidationError(RecordsError):
    """Payload shape or content is invalid. Never mutates storage."""

    code = "invalid_records_payload"
    http_status = 400


class PreconditionRequiredError(RecordsError):
    """A write omitted ``expectedUpdatedAt`` entirely."""

    code = "records_precondition_required"
    http_status = 428

    def __init__(self, message: str = "Payload must include `expectedUpdatedAt` from GET /api/v1/records."):
        super().__init__(message)


class ConflictError(RecordsError):
    """The collection changed since the caller's read."""

    code = "records_conflict"
    http_status = 409

    def __init__(
        self,
        current_updated_at: datetime | None,
        message: str = "Records were updated by another operation. Refresh records and try again.",
    ):
        self.current_updated_at = current_updated_at
        super().__init__(message)


class ServiceUnavailableError(RecordsError):
    """Storage is unconfigured, unreachable or timed out."""

    code = "records_storage_unavailable"
    http_status = 503


class SnapshotDesyncError(RecordsError):
    """A v2 snapshot sync finished with a row count different from the input."""

    code = "records_dual_write_desync"
    http_status = 500

    def __init__(self, expected_count: int, v2_count: int):
        self.expected_count = expected_count
        self.v2_count = v2_count
        super().__init__(
            f"Dual-write synchronization failed: expected {expected_count} v2 rows, found {v2_count}."
        )


class InternalError(RecordsError):
    """Unexpected failure; details are logged, the caller gets a generic message."""

    code = "internal_error"
    http_status = 500

    def __init__(self, message: str = "Internal server error."):
        super().__init__(message)
