"""
Common exception types and error classification for the bundle pipeline.

Provides:
- ErrorCategory enum for retry decisions
- Typed exception hierarchy for pipeline errors
- Error classification utilities
"""

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures (network timeouts, 5xx, dropped streams).
                   Never retried per URL, but the executor may retry a batch.
        PERMANENT: Failures that won't succeed on retry
                   (404, unsupported image, corrupt bundle, bad configuration)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error should trigger a task-level retry."""
        return self.category in (ErrorCategory.TRANSIENT, ErrorCategory.UNKNOWN)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Permanent Errors (Don't Retry)
# =============================================================================


class PermanentError(PipelineError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


class ConfigurationError(PermanentError):
    """Invalid configuration."""

    pass


# =============================================================================
# Bundle Errors
# =============================================================================


class BundleError(PipelineError):
    """
    Base class for bundle storage errors.

    Bundle errors indicate a storage-layer malfunction rather than a bad
    remote resource, so they are never swallowed by per-URL handling.
    Category is UNKNOWN so the executor may retry the owning batch.
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        context = dict(context or {})
        if path is not None:
            context.setdefault("bundle_path", str(path))
        super().__init__(message, cause, context)
        self.path = path


class BundleIOError(BundleError):
    """Index or data file could not be opened, written, read or deleted."""

    pass


class ClosedBundleError(BundleError):
    """Operation attempted on a bundle that has been closed."""

    pass


class BundleModeError(BundleError):
    """Operation not permitted in the bundle's open mode."""

    category = ErrorCategory.PERMANENT


class CorruptBundleError(BundleError):
    """Index and data files are structurally inconsistent."""

    category = ErrorCategory.PERMANENT


# =============================================================================
# Task Errors
# =============================================================================


class TaskFailedError(PipelineError):
    """A worker batch failed on every permitted attempt."""

    category = ErrorCategory.PERMANENT

    def __init__(
        self,
        sequence_start: int,
        attempts: int,
        cause: Optional[Exception] = None,
    ):
        message = f"Batch starting at {sequence_start} failed after {attempts} attempt(s)"
        super().__init__(
            message,
            cause,
            {"sequence_start": sequence_start, "attempts": attempts},
        )
        self.sequence_start = sequence_start
        self.attempts = attempts


# =============================================================================
# Error Classification Utilities
# =============================================================================


def classify_http_status(status_code: int) -> ErrorCategory:
    """
    Classify HTTP status code into error category.

    Args:
        status_code: HTTP response status

    Returns:
        Appropriate ErrorCategory
    """
    if 200 <= status_code < 300:
        return ErrorCategory.UNKNOWN  # Not an error

    if status_code in (408, 429):
        return ErrorCategory.TRANSIENT  # Timeout / rate limited

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT  # Client errors, won't fix with retry

    if status_code >= 500:
        return ErrorCategory.TRANSIENT  # Server errors, may recover

    return ErrorCategory.UNKNOWN


def classify_exception(exc: Exception) -> ErrorCategory:
    """
    Classify an exception into error category.

    Args:
        exc: Exception to classify

    Returns:
        Appropriate ErrorCategory
    """
    # Already classified
    if isinstance(exc, PipelineError):
        return exc.category

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    # Connection errors
    connection_markers = (
        "connectionerror",
        "connection refused",
        "connection reset",
        "connection aborted",
        "no route to host",
        "network unreachable",
        "name resolution",
        "dns",
        "socket",
        "broken pipe",
        "payloaderror",
        "disconnected",
    )
    if any(m in exc_type or m in exc_str for m in connection_markers):
        return ErrorCategory.TRANSIENT

    # Timeout errors
    if "timeout" in exc_type or "timeout" in exc_str:
        return ErrorCategory.TRANSIENT

    # Server errors
    if "503" in exc_str or "502" in exc_str or "504" in exc_str:
        return ErrorCategory.TRANSIENT

    # Not found / forbidden
    if "404" in exc_str or "not found" in exc_str:
        return ErrorCategory.PERMANENT
    if "403" in exc_str or "forbidden" in exc_str:
        return ErrorCategory.PERMANENT

    return ErrorCategory.UNKNOWN
