"""Tests for the error taxonomy and classification helpers."""

import asyncio

import pytest

from bundle_core.errors import exceptions as exc
from bundle_core.errors.exceptions import ErrorCategory


class TestPipelineErrors:
    """Tests for the PipelineError hierarchy."""

    def test_str_includes_cause(self):
        """The cause is appended to the message."""
        error = exc.PipelineError("outer", cause=ValueError("inner"))
        assert str(error) == "outer | Caused by: inner"

    @pytest.mark.parametrize(
        "error_class,category,retryable",
        [
            (exc.ConfigurationError, ErrorCategory.PERMANENT, False),
            (exc.BundleIOError, ErrorCategory.UNKNOWN, True),
            (exc.CorruptBundleError, ErrorCategory.PERMANENT, False),
            (exc.BundleModeError, ErrorCategory.PERMANENT, False),
        ],
    )
    def test_categories(self, error_class, category, retryable):
        """Each error class carries its category and retry flag."""
        error = error_class("boom")
        assert error.category is category
        assert error.is_retryable is retryable

    def test_bundle_error_records_path(self):
        """Bundle errors keep the path in their context."""
        error = exc.BundleIOError("disk full", path="/data/out.bundle")
        assert error.path == "/data/out.bundle"
        assert error.context["bundle_path"] == "/data/out.bundle"
        assert isinstance(error, exc.BundleError)
        assert isinstance(error, exc.PipelineError)

    def test_task_failed_error(self):
        """TaskFailedError names the batch and is never retried."""
        cause = exc.BundleIOError("no space left")
        error = exc.TaskFailedError(300, 2, cause=cause)
        assert error.sequence_start == 300
        assert error.attempts == 2
        assert error.cause is cause
        assert "300" in str(error)
        assert not error.is_retryable


class TestClassification:
    """Tests for classify_http_status and classify_exception."""

    @pytest.mark.parametrize(
        "status,category",
        [
            (200, ErrorCategory.UNKNOWN),
            (404, ErrorCategory.PERMANENT),
            (408, ErrorCategory.TRANSIENT),
            (429, ErrorCategory.TRANSIENT),
            (500, ErrorCategory.TRANSIENT),
        ],
    )
    def test_http_status(self, status, category):
        """Status codes map to categories."""
        assert exc.classify_http_status(status) is category

    def test_timeout_exception(self):
        """Timeouts are transient."""
        assert exc.classify_exception(asyncio.TimeoutError()) is ErrorCategory.TRANSIENT

    def test_connection_message(self):
        """Connection resets are recognised by message."""
        error = OSError("Connection reset by peer")
        assert exc.classify_exception(error) is ErrorCategory.TRANSIENT

    def test_pipeline_error_keeps_category(self):
        """Pipeline errors keep their own category."""
        assert exc.classify_exception(exc.ConfigurationError("x")) is ErrorCategory.PERMANENT

    def test_unclassified(self):
        """Anything else is unknown."""
        assert exc.classify_exception(RuntimeError("odd")) is ErrorCategory.UNKNOWN
