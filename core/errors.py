"""Error taxonomy for the sync engine.

Expected failures are recovered locally and turned into structured results;
these exceptions only travel between a collaborator (cache, remote store,
domain table) and the component that converts them into a result.

Usage:
    from core.errors import RemoteStoreError, ErrorCodes, format_error

    raise RemoteStoreError("Upsert rejected", code=ErrorCodes.UPSERT_FAILED, status=409)

    print(format_error("Sync failed", error="not authenticated", code=ErrorCodes.NOT_AUTHENTICATED))
"""

from typing import Any


class ErrorCodes:
    """Standard error codes for sync results and log lines."""

    # Job level
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    SYNC_IN_PROGRESS = "SYNC_IN_PROGRESS"
    NO_TASKS = "NO_TASKS"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # Domain level
    CACHE_READ_FAILED = "CACHE_READ_FAILED"
    INVALID_JSON = "INVALID_JSON"
    INVALID_SHAPE = "INVALID_SHAPE"
    UPSERT_FAILED = "UPSERT_FAILED"
    TIMEOUT = "TIMEOUT"

    # Remote store
    AUTH_FAILED = "AUTH_FAILED"
    CONNECTION_FAILED = "CONNECTION_FAILED"

    # Configuration
    INVALID_CONFIG = "INVALID_CONFIG"


class SyncError(Exception):
    """Base class for sync engine errors."""

    default_code: str = ErrorCodes.INTERNAL_ERROR

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class CacheReadError(SyncError):
    """The local cache could not be read."""

    default_code = ErrorCodes.CACHE_READ_FAILED


class RecordShapeError(SyncError):
    """A cached value is not valid JSON or has the wrong shape for its domain."""

    default_code = ErrorCodes.INVALID_SHAPE


class RemoteStoreError(SyncError):
    """The remote store rejected an upsert or could not be reached."""

    default_code = ErrorCodes.UPSERT_FAILED

    def __init__(self, message: str, code: str | None = None, status: int | None = None):
        super().__init__(message, code=code)
        self.status = status


class DomainConfigError(SyncError, ValueError):
    """The declarative domain table is invalid."""

    default_code = ErrorCodes.INVALID_CONFIG


class ConfigValidationError(SyncError):
    """Raised when config validation fails."""

    default_code = ErrorCodes.INVALID_CONFIG

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Config validation failed: {'; '.join(errors)}")


def format_error(
    message: str,
    error: str | None = None,
    code: str | None = None,
    context: dict[str, Any] | None = None,
) -> str:
    """Create a standardized one-block error message for CLI output.

    Examples:
        >>> format_error("Sync failed", error="not authenticated", code="NOT_AUTHENTICATED")
        '❌ Sync failed: not authenticated [NOT_AUTHENTICATED]'
    """
    parts = [f"❌ {message}"]

    if error:
        parts.append(f": {error}")

    if code:
        parts.append(f" [{code}]")

    if context:
        parts.append("\n   " + ", ".join(f"{k}={v}" for k, v in context.items()))

    return "".join(parts)


def format_success(message: str, data: dict[str, Any] | None = None) -> str:
    """Create a standardized success message for CLI output.

    Examples:
        >>> format_success("Sync complete", data={"synced": 3, "failed": 0})
        '✅ Sync complete\\n   synced: 3\\n   failed: 0'
    """
    parts = [f"✅ {message}"]

    if data:
        for key, value in data.items():
            parts.append(f"\n   {key}: {value}")

    return "".join(parts)
