"""
Image validation before bundle commit.

Checks the claimed HTTP content type against the supported formats and
confirms a structural header can be parsed. Validation never consumes the
stream: an accepted result hands back the full byte stream, ready to be
appended to a bundle as-is.
"""

from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Dict, Optional, Union

from bundle_core.bundle.format import ImageType
from bundle_core.validation.header import DEFAULT_MAX_HEADER_BYTES, ImageHeader
from bundle_core.validation.stream import PeekableStream

SUPPORTED_CONTENT_TYPES: Dict[str, ImageType] = {
    "image/jpeg": ImageType.JPEG,
    "image/png": ImageType.PNG,
}


class ValidationStatus(str, Enum):
    ACCEPTED = "accepted"
    REJECTED_UNSUPPORTED_TYPE = "rejected_unsupported_type"
    REJECTED_BAD_HEADER = "rejected_bad_header"


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating one image.

    Attributes:
        status: Accepted or the rejection reason
        image_type: Resolved format (None for unsupported types)
        header: Parsed header (accepted only)
        stream: Unconsumed stream (None for unsupported types)
        reason: Human-readable rejection reason
    """

    status: ValidationStatus
    image_type: Optional[ImageType] = None
    header: Optional[ImageHeader] = None
    stream: Optional[PeekableStream] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status is ValidationStatus.ACCEPTED


def resolve_image_type(content_type: Optional[str]) -> Optional[ImageType]:
    """
    Map an HTTP Content-Type to a supported ImageType.

    Parameters such as ``; charset=binary`` are ignored and comparison is
    case-insensitive.
    """
    if not content_type:
        return None
    media_type = content_type.split(";", 1)[0].strip().lower()
    return SUPPORTED_CONTENT_TYPES.get(media_type)


def validate(
    content_type: Optional[str],
    stream: Union[PeekableStream, BinaryIO],
    max_header_bytes: int = DEFAULT_MAX_HEADER_BYTES,
) -> ValidationResult:
    """
    Validate an image stream against its claimed content type.

    Unsupported or missing content types are rejected without reading the
    stream. For supported types the header is decoded from peeked bytes;
    the stream is left positioned at its start whatever the outcome.

    Args:
        content_type: Claimed Content-Type header value
        stream: Image byte stream
        max_header_bytes: Most bytes inspected for the header

    Returns:
        ValidationResult
    """
    image_type = resolve_image_type(content_type)
    if image_type is None:
        return ValidationResult(
            status=ValidationStatus.REJECTED_UNSUPPORTED_TYPE,
            reason=f"Unsupported content type [{content_type}]",
        )

    peekable = PeekableStream.wrap(stream)
    header = peekable.peek_header(image_type, max_header_bytes)
    if header is None:
        return ValidationResult(
            status=ValidationStatus.REJECTED_BAD_HEADER,
            image_type=image_type,
            stream=peekable,
            reason=f"Failed to parse {image_type.name} header",
        )

    return ValidationResult(
        status=ValidationStatus.ACCEPTED,
        image_type=image_type,
        header=header,
        stream=peekable,
    )
