"""Buffered stream that supports non-consuming header peeks."""

from typing import BinaryIO, Optional, Union

from bundle_core.bundle.format import ImageType
from bundle_core.validation.header import (
    DEFAULT_MAX_HEADER_BYTES,
    ImageHeader,
    decode_header,
)


class PeekableStream:
    """
    Wrap a binary stream so its leading bytes can be inspected without
    consuming them.

    Bytes returned by ``peek()`` are kept in an internal buffer and handed
    out again by ``read()``, so a header check never loses data that must
    later be appended to a bundle verbatim.
    """

    def __init__(self, raw: BinaryIO):
        self._raw = raw
        self._buffer = bytearray()
        self._pos = 0

    def peek(self, max_bytes: int) -> bytes:
        """Return up to ``max_bytes`` upcoming bytes without consuming them."""
        available = len(self._buffer) - self._pos
        while available < max_bytes:
            chunk = self._raw.read(max_bytes - available)
            if not chunk:
                break
            self._buffer += chunk
            available += len(chunk)
        return bytes(self._buffer[self._pos:self._pos + max_bytes])

    def peek_header(
        self,
        image_type: ImageType,
        max_bytes: int = DEFAULT_MAX_HEADER_BYTES,
    ) -> Optional[ImageHeader]:
        """Decode the image header from upcoming bytes, or None if unparsable."""
        return decode_header(self.peek(max_bytes), image_type)

    def read(self, size: Optional[int] = -1) -> bytes:
        """Read buffered bytes first, then from the underlying stream."""
        if size is None or size < 0:
            data = bytes(self._buffer[self._pos:]) + self._raw.read()
            self._reset_buffer()
            return data

        buffered = bytes(self._buffer[self._pos:self._pos + size])
        self._pos += len(buffered)
        if self._pos >= len(self._buffer):
            self._reset_buffer()
        if len(buffered) < size:
            return buffered + self._raw.read(size - len(buffered))
        return buffered

    def _reset_buffer(self) -> None:
        self._buffer.clear()
        self._pos = 0

    @classmethod
    def wrap(cls, source: Union["PeekableStream", BinaryIO]) -> "PeekableStream":
        if isinstance(source, cls):
            return source
        return cls(source)
