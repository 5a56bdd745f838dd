"""
Image validation module.

Confirms a fetched body is a supported image type with a parsable header
before it is committed to a bundle.
"""

from bundle_core.validation.header import (
    DEFAULT_MAX_HEADER_BYTES,
    ImageHeader,
    decode_header,
)
from bundle_core.validation.image_validator import (
    SUPPORTED_CONTENT_TYPES,
    ValidationResult,
    ValidationStatus,
    resolve_image_type,
    validate,
)
from bundle_core.validation.stream import PeekableStream

__all__ = [
    "DEFAULT_MAX_HEADER_BYTES",
    "ImageHeader",
    "PeekableStream",
    "SUPPORTED_CONTENT_TYPES",
    "ValidationResult",
    "ValidationStatus",
    "decode_header",
    "resolve_image_type",
    "validate",
]
