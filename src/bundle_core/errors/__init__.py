"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- PipelineError hierarchy for typed exceptions
- Bundle storage errors
- Classification utilities for error handling
"""

from bundle_core.errors.exceptions import (
    # Enums
    ErrorCategory,
    # Base classes
    PipelineError,
    PermanentError,
    # Permanent errors
    ConfigurationError,
    # Bundle errors
    BundleError,
    BundleIOError,
    ClosedBundleError,
    BundleModeError,
    CorruptBundleError,
    # Task errors
    TaskFailedError,
    # Classification utilities
    classify_http_status,
    classify_exception,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "PipelineError",
    "PermanentError",
    # Permanent errors
    "ConfigurationError",
    # Bundle errors
    "BundleError",
    "BundleIOError",
    "ClosedBundleError",
    "BundleModeError",
    "CorruptBundleError",
    # Task errors
    "TaskFailedError",
    # Classification utilities
    "classify_http_status",
    "classify_exception",
]
