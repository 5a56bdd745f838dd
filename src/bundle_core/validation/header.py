"""Image header decoding with Pillow.

Only the header is parsed: ``Image.open`` is lazy and stops before pixel
data, which is enough to confirm the format and read the dimensions.
"""

import io
import logging
import struct
from dataclasses import dataclass
from typing import Optional

from PIL import Image

from bundle_core.bundle.format import ImageType

logger = logging.getLogger(__name__)

# Upper bound on bytes inspected for a header (JPEG APPn segments come first)
DEFAULT_MAX_HEADER_BYTES = 1024 * 1024

PIL_FORMATS = {
    ImageType.JPEG: "JPEG",
    ImageType.PNG: "PNG",
}


@dataclass(frozen=True)
class ImageHeader:
    """Structural header facts for a validated image."""

    image_type: ImageType
    width: int
    height: int


def decode_header(prefix: bytes, image_type: ImageType) -> Optional[ImageHeader]:
    """
    Parse an image header of the claimed type from leading bytes.

    Args:
        prefix: Leading bytes of the image
        image_type: Claimed format; other formats are not tried

    Returns:
        ImageHeader, or None if the bytes don't start with a parsable header
    """
    if not prefix:
        return None

    try:
        with Image.open(io.BytesIO(prefix), formats=[PIL_FORMATS[image_type]]) as img:
            width, height = img.size
    except (
        OSError,
        SyntaxError,
        ValueError,
        EOFError,
        IndexError,
        struct.error,
        Image.DecompressionBombError,
    ) as e:
        logger.debug(
            "Header decode failed",
            extra={"image_type": image_type.name, "error_message": str(e)},
        )
        return None

    if width <= 0 or height <= 0:
        return None
    return ImageHeader(image_type, width, height)
