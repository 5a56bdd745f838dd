"""
Fetch result models.

A fetch never raises for per-URL problems; it returns a tagged
FetchOutcome that the worker loop branches on.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from bundle_core.bundle.format import ImageType
from bundle_core.errors.exceptions import ErrorCategory
from bundle_core.validation.header import ImageHeader
from bundle_core.validation.stream import PeekableStream


class FetchStatus(str, Enum):
    """
    Per-URL fetch outcome.

    ACCEPTED:                  Valid image, ready to commit
    REJECTED_INVALID_URL:      Malformed/unsupported URL, never connected
    REJECTED_UNSUPPORTED_TYPE: Content type is not image/jpeg or image/png
    REJECTED_BAD_HEADER:       Header could not be parsed (corrupt/partial image)
    REJECTED_TOO_LARGE:        Body exceeds the configured size limit
    CONNECTION_ERROR:          Connect failed, timed out or returned an HTTP error
    TRANSFER_ERROR:            Connected, but the body could not be read
    """

    ACCEPTED = "accepted"
    REJECTED_INVALID_URL = "rejected_invalid_url"
    REJECTED_UNSUPPORTED_TYPE = "rejected_unsupported_type"
    REJECTED_BAD_HEADER = "rejected_bad_header"
    REJECTED_TOO_LARGE = "rejected_too_large"
    CONNECTION_ERROR = "connection_error"
    TRANSFER_ERROR = "transfer_error"


@dataclass
class FetchOutcome:
    """
    Result of fetching and validating one image URL.

    Attributes:
        url: Requested URL
        status: Outcome tag
        elapsed_ms: Time spent on this URL
        image_type: Resolved image format (accepted/bad header)
        header: Parsed header (accepted only)
        stream: Full unconsumed body (accepted only)
        size: Body size in bytes (when read)
        content_type: Content-Type reported by the server
        http_status: HTTP status code, when a response was received
        reason: Human-readable explanation for non-accepted outcomes
        error_category: Classification for network errors
    """

    url: str
    status: FetchStatus
    elapsed_ms: int = 0
    image_type: Optional[ImageType] = None
    header: Optional[ImageHeader] = None
    stream: Optional[PeekableStream] = None
    size: int = 0
    content_type: Optional[str] = None
    http_status: Optional[int] = None
    reason: str = ""
    error_category: Optional[ErrorCategory] = None

    @property
    def accepted(self) -> bool:
        return self.status is FetchStatus.ACCEPTED

    @property
    def should_back_off(self) -> bool:
        """Whether the worker should pause before its next URL."""
        return self.status is FetchStatus.TRANSFER_ERROR

    @classmethod
    def accepted_outcome(
        cls,
        url: str,
        image_type: ImageType,
        header: ImageHeader,
        stream: PeekableStream,
        size: int,
        content_type: Optional[str],
        http_status: int,
        elapsed_ms: int,
    ) -> "FetchOutcome":
        return cls(
            url=url,
            status=FetchStatus.ACCEPTED,
            elapsed_ms=elapsed_ms,
            image_type=image_type,
            header=header,
            stream=stream,
            size=size,
            content_type=content_type,
            http_status=http_status,
        )

    @classmethod
    def rejected(
        cls,
        url: str,
        status: FetchStatus,
        reason: str,
        elapsed_ms: int,
        content_type: Optional[str] = None,
        http_status: Optional[int] = None,
        image_type: Optional[ImageType] = None,
    ) -> "FetchOutcome":
        return cls(
            url=url,
            status=status,
            elapsed_ms=elapsed_ms,
            image_type=image_type,
            content_type=content_type,
            http_status=http_status,
            reason=reason,
            error_category=ErrorCategory.PERMANENT,
        )

    @classmethod
    def network_failure(
        cls,
        url: str,
        status: FetchStatus,
        reason: str,
        elapsed_ms: int,
        error_category: ErrorCategory,
        http_status: Optional[int] = None,
        content_type: Optional[str] = None,
    ) -> "FetchOutcome":
        return cls(
            url=url,
            status=status,
            elapsed_ms=elapsed_ms,
            http_status=http_status,
            content_type=content_type,
            reason=reason,
            error_category=error_category,
        )
