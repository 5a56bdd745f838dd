"""
Bundle on-disk format.

A bundle is two files:
    <path>       index: 12-byte header followed by fixed-size records
    <path>.dat   data: concatenated raw image payloads

Index header (big-endian):  magic (8s) | version (H) | reserved (H)
Index record (big-endian):  offset (Q) | length (Q) | image_type (B)

Record i always has offset == sum of the lengths of records 0..i-1.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import List, Tuple, Union

from bundle_core.errors.exceptions import CorruptBundleError

MAGIC = b"IMGBNDL\x00"
FORMAT_VERSION = 1

HEADER_STRUCT = struct.Struct(">8sHH")
RECORD_STRUCT = struct.Struct(">QQB")

HEADER_SIZE = HEADER_STRUCT.size  # 12
RECORD_SIZE = RECORD_STRUCT.size  # 17

DATA_SUFFIX = ".dat"

PathLike = Union[str, Path]


class ImageType(IntEnum):
    """Image formats a bundle can hold. Values are persisted in the index."""

    JPEG = 1
    PNG = 2


@dataclass(frozen=True)
class IndexRecord:
    """Location of one image inside the data file."""

    offset: int
    length: int
    image_type: ImageType

    @property
    def end(self) -> int:
        return self.offset + self.length

    def shifted(self, delta: int) -> "IndexRecord":
        return IndexRecord(self.offset + delta, self.length, self.image_type)


def bundle_data_path(path: PathLike) -> Path:
    """Data file path for the bundle whose index lives at ``path``."""
    return Path(str(path) + DATA_SUFFIX)


def encode_header() -> bytes:
    return HEADER_STRUCT.pack(MAGIC, FORMAT_VERSION, 0)


def encode_record(record: IndexRecord) -> bytes:
    return RECORD_STRUCT.pack(record.offset, record.length, int(record.image_type))


def encode_records(records: List[IndexRecord]) -> bytes:
    return b"".join(encode_record(r) for r in records)


def decode_index(raw: bytes, path: PathLike = "") -> Tuple[List[IndexRecord], int]:
    """
    Decode index file contents.

    Returns:
        (records, trailing) where trailing is the number of bytes after the
        last complete record (an interrupted record write).

    Raises:
        CorruptBundleError: bad header, unknown image type, or offsets that
            are not cumulative
    """
    if len(raw) < HEADER_SIZE:
        raise CorruptBundleError(
            f"Index too short for header ({len(raw)} bytes)", path=str(path)
        )

    magic, version, _reserved = HEADER_STRUCT.unpack_from(raw, 0)
    if magic != MAGIC:
        raise CorruptBundleError(f"Bad index magic {magic!r}", path=str(path))
    if version != FORMAT_VERSION:
        raise CorruptBundleError(
            f"Unsupported bundle format version {version}", path=str(path)
        )

    body = len(raw) - HEADER_SIZE
    count, trailing = divmod(body, RECORD_SIZE)

    records: List[IndexRecord] = []
    expected_offset = 0
    for i in range(count):
        offset, length, type_code = RECORD_STRUCT.unpack_from(
            raw, HEADER_SIZE + i * RECORD_SIZE
        )
        try:
            image_type = ImageType(type_code)
        except ValueError:
            raise CorruptBundleError(
                f"Unknown image type {type_code} in record {i}", path=str(path)
            ) from None
        if offset != expected_offset:
            raise CorruptBundleError(
                f"Record {i} offset {offset} does not follow previous record "
                f"(expected {expected_offset})",
                path=str(path),
            )
        records.append(IndexRecord(offset, length, image_type))
        expected_offset = offset + length

    return records, trailing
