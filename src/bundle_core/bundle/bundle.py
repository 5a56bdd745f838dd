"""
Append-only image bundle backed by an index file and a data file.

Usage:
    with Bundle.open(path, BundleMode.WRITE, truncate=True) as bundle:
        bundle.append_image(jpeg_bytes, ImageType.JPEG)

    with Bundle.open(shard_path, BundleMode.READ) as shard:
        final.append_bundle(shard)

    with Bundle.open(path, BundleMode.READ) as bundle:
        for image in bundle:
            ...

Every append commits the payload and its index record together: if
either write fails, both files are truncated back to their previous
lengths before the error is raised.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Union

from bundle_core.bundle.format import (
    HEADER_SIZE,
    RECORD_SIZE,
    ImageType,
    IndexRecord,
    PathLike,
    bundle_data_path,
    decode_index,
    encode_header,
    encode_record,
    encode_records,
)
from bundle_core.errors.exceptions import (
    BundleError,
    BundleIOError,
    BundleModeError,
    ClosedBundleError,
    CorruptBundleError,
)

logger = logging.getLogger(__name__)

# Copy buffer for stream appends and bundle concatenation (1MB)
COPY_CHUNK_SIZE = 1024 * 1024

ImageSource = Union[bytes, bytearray, memoryview, BinaryIO]


class BundleMode(str, Enum):
    """How a bundle is opened."""

    READ = "read"
    WRITE = "write"


@dataclass(frozen=True)
class StoredImage:
    """One image read back from a bundle."""

    position: int
    image_type: ImageType
    data: bytes


class Bundle:
    """
    Image bundle: an index file at ``path`` and a data file at ``path + ".dat"``.

    The two files are always opened, closed and deleted together. Use
    ``Bundle.open()`` (or ``open_bundle()``) to get an open instance.
    """

    def __init__(self, path: PathLike):
        self._path = Path(path)
        self._mode: Optional[BundleMode] = None
        self._index_file: Optional[BinaryIO] = None
        self._data_file: Optional[BinaryIO] = None
        self._records: List[IndexRecord] = []
        self._data_length = 0
        self._closed = True

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    @classmethod
    def open(
        cls,
        path: PathLike,
        mode: Union[BundleMode, str] = BundleMode.WRITE,
        truncate: bool = True,
    ) -> "Bundle":
        """
        Open a bundle.

        Args:
            path: Index file path (data file is derived)
            mode: READ or WRITE
            truncate: WRITE only. True discards any existing content;
                False reopens an existing bundle and appends after its
                last committed record.

        Raises:
            BundleIOError: Files cannot be created, opened or read
            CorruptBundleError: Existing index/data are inconsistent
        """
        bundle = cls(path)
        mode = BundleMode(mode)
        if mode is BundleMode.READ:
            bundle._open_read()
        elif truncate or not bundle._path.exists():
            bundle._open_truncated()
        else:
            bundle._open_append()
        bundle._mode = mode
        bundle._closed = False
        return bundle

    def _open_truncated(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._index_file = open(self._path, "wb")
            self._data_file = open(self.data_path, "wb")
            self._index_file.write(encode_header())
            self._index_file.flush()
        except OSError as e:
            self._close_files_quietly()
            raise BundleIOError(
                f"Cannot create bundle: {e}", path=str(self._path), cause=e
            ) from e
        self._records = []
        self._data_length = 0

    def _open_append(self) -> None:
        try:
            self._index_file = open(self._path, "r+b")
            self._data_file = open(self.data_path, "r+b")
            self._load_index()
            # Drop anything past the last committed record
            self._index_file.truncate(HEADER_SIZE + len(self._records) * RECORD_SIZE)
            self._index_file.seek(0, os.SEEK_END)
            self._data_file.truncate(self._data_length)
            self._data_file.seek(0, os.SEEK_END)
        except BundleError:
            self._close_files_quietly()
            raise
        except OSError as e:
            self._close_files_quietly()
            raise BundleIOError(
                f"Cannot reopen bundle for append: {e}", path=str(self._path), cause=e
            ) from e

    def _open_read(self) -> None:
        try:
            self._index_file = open(self._path, "rb")
            self._data_file = open(self.data_path, "rb")
            self._load_index()
        except BundleError:
            self._close_files_quietly()
            raise
        except OSError as e:
            self._close_files_quietly()
            raise BundleIOError(
                f"Cannot open bundle for reading: {e}", path=str(self._path), cause=e
            ) from e

    def _load_index(self) -> None:
        assert self._index_file is not None and self._data_file is not None
        self._index_file.seek(0)
        records, trailing = decode_index(self._index_file.read(), self._path)
        data_length = records[-1].end if records else 0
        data_size = os.fstat(self._data_file.fileno()).st_size

        if data_size < data_length:
            raise CorruptBundleError(
                f"Data file holds {data_size} bytes but index references {data_length}",
                path=str(self._path),
            )
        if trailing:
            logger.warning(
                "Ignoring partial index record",
                extra={"shard_path": str(self._path), "bytes": trailing},
            )
        if data_size > data_length:
            logger.warning(
                "Ignoring uncommitted data past last index record",
                extra={"shard_path": str(self._path), "bytes": data_size - data_length},
            )

        self._records = records
        self._data_length = data_length

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        """Index file path."""
        return self._path

    @property
    def data_path(self) -> Path:
        """Data file path, always ``path + ".dat"``."""
        return bundle_data_path(self._path)

    @property
    def mode(self) -> Optional[BundleMode]:
        return self._mode

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def image_count(self) -> int:
        return len(self._records)

    @property
    def data_length(self) -> int:
        """Committed bytes in the data file."""
        return self._data_length

    @property
    def records(self) -> List[IndexRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        state = "closed" if self._closed else self._mode.value
        return (
            f"Bundle(path={str(self._path)!r}, {state}, "
            f"images={len(self._records)}, bytes={self._data_length})"
        )

    # ------------------------------------------------------------------
    # Appending
    # ------------------------------------------------------------------

    def append_image(self, data: ImageSource, image_type: ImageType) -> IndexRecord:
        """
        Append one image payload and its index record.

        Args:
            data: Raw image bytes or a readable binary stream (read to EOF)
            image_type: Image format of the payload

        Returns:
            The committed IndexRecord

        Raises:
            ClosedBundleError: Bundle was closed
            BundleModeError: Bundle is open for reading
            ValueError: Payload is empty
            BundleIOError: Write failed (nothing was committed)
        """
        self._check_writable()
        image_type = ImageType(image_type)
        if isinstance(data, (bytes, bytearray, memoryview)) and len(data) == 0:
            raise ValueError("Cannot append an empty image")

        index_mark = self._index_file.tell()
        data_mark = self._data_length
        try:
            if isinstance(data, (bytes, bytearray, memoryview)):
                self._data_file.write(data)
                length = len(data)
            else:
                length = self._copy_stream(data)
                if length == 0:
                    raise ValueError("Cannot append an empty image")
            record = IndexRecord(data_mark, length, image_type)
            self._index_file.write(encode_record(record))
            self._data_file.flush()
            self._index_file.flush()
        except Exception as e:
            self._rollback(index_mark, data_mark)
            if isinstance(e, OSError):
                raise BundleIOError(
                    f"Failed to append image: {e}", path=str(self._path), cause=e
                ) from e
            raise

        self._records.append(record)
        self._data_length += length
        return record

    def append_bundle(self, other: "Bundle") -> int:
        """
        Concatenate another bundle onto this one.

        Streams the other bundle's committed data bytes and writes its index
        records with offsets shifted by this bundle's current data length.
        No image is decoded or re-validated.

        Args:
            other: Bundle open in READ mode

        Returns:
            Number of records appended

        Raises:
            ClosedBundleError: Either bundle is closed
            BundleModeError: This bundle isn't writable or other isn't readable
            CorruptBundleError: Other bundle's data ended early
            BundleIOError: Copy failed (nothing was committed)
        """
        self._check_writable()
        if other is self:
            raise BundleModeError("Cannot append a bundle to itself", path=str(self._path))
        if other.closed:
            raise ClosedBundleError("Source bundle is closed", path=str(other.path))
        if other.mode is not BundleMode.READ:
            raise BundleModeError(
                "Source bundle must be open for reading", path=str(other.path)
            )

        index_mark = self._index_file.tell()
        data_mark = self._data_length
        shifted = [record.shifted(data_mark) for record in other._records]
        try:
            other._data_file.seek(0)
            copied = self._copy_exact(other._data_file, other.data_length)
            if copied != other.data_length:
                raise CorruptBundleError(
                    f"Data ended after {copied} of {other.data_length} bytes",
                    path=str(other.path),
                )
            self._index_file.write(encode_records(shifted))
            self._data_file.flush()
            self._index_file.flush()
        except BundleError:
            self._rollback(index_mark, data_mark)
            raise
        except OSError as e:
            self._rollback(index_mark, data_mark)
            raise BundleIOError(
                f"Failed to append bundle {other.path}: {e}",
                path=str(self._path),
                cause=e,
            ) from e

        self._records.extend(shifted)
        self._data_length += other.data_length
        return len(shifted)

    def _copy_stream(self, source: BinaryIO) -> int:
        total = 0
        while True:
            chunk = source.read(COPY_CHUNK_SIZE)
            if not chunk:
                return total
            self._data_file.write(chunk)
            total += len(chunk)

    def _copy_exact(self, source: BinaryIO, length: int) -> int:
        remaining = length
        while remaining > 0:
            chunk = source.read(min(COPY_CHUNK_SIZE, remaining))
            if not chunk:
                break
            self._data_file.write(chunk)
            remaining -= len(chunk)
        return length - remaining

    def _rollback(self, index_mark: int, data_mark: int) -> None:
        try:
            self._data_file.seek(data_mark)
            self._data_file.truncate()
            self._index_file.seek(index_mark)
            self._index_file.truncate()
        except OSError as e:
            raise BundleIOError(
                f"Failed to roll back partial append: {e}",
                path=str(self._path),
                cause=e,
            ) from e

    def _check_writable(self) -> None:
        if self._closed:
            raise ClosedBundleError("Bundle is closed", path=str(self._path))
        if self._mode is not BundleMode.WRITE:
            raise BundleModeError("Bundle is not open for writing", path=str(self._path))

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def _check_readable(self) -> None:
        if self._closed:
            raise ClosedBundleError("Bundle is closed", path=str(self._path))
        if self._mode is not BundleMode.READ:
            raise BundleModeError("Bundle is not open for reading", path=str(self._path))

    def read_image(self, position: int) -> StoredImage:
        """Read the image stored at ``position`` (0-based append order)."""
        self._check_readable()
        record = self._records[position]
        try:
            self._data_file.seek(record.offset)
            data = self._data_file.read(record.length)
        except OSError as e:
            raise BundleIOError(
                f"Failed to read image {position}: {e}", path=str(self._path), cause=e
            ) from e
        if len(data) != record.length:
            raise CorruptBundleError(
                f"Image {position} truncated: {len(data)} of {record.length} bytes",
                path=str(self._path),
            )
        return StoredImage(position, record.image_type, data)

    def __iter__(self) -> Iterator[StoredImage]:
        self._check_readable()
        for position in range(len(self._records)):
            yield self.read_image(position)

    # ------------------------------------------------------------------
    # Closing
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Flush and close both files. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            if self._mode is BundleMode.WRITE:
                for handle in (self._data_file, self._index_file):
                    handle.flush()
                    os.fsync(handle.fileno())
        except OSError as e:
            raise BundleIOError(
                f"Failed to finalize bundle: {e}", path=str(self._path), cause=e
            ) from e
        finally:
            self._close_files_quietly()

    def _close_files_quietly(self) -> None:
        for handle in (self._index_file, self._data_file):
            if handle is not None:
                try:
                    handle.close()
                except OSError as e:
                    logger.warning(
                        "Error closing bundle file",
                        extra={"shard_path": str(self._path), "error_message": str(e)},
                    )
        self._index_file = None
        self._data_file = None

    def __enter__(self) -> "Bundle":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def open_bundle(
    path: PathLike,
    mode: Union[BundleMode, str] = BundleMode.WRITE,
    truncate: bool = True,
) -> Bundle:
    """Open a bundle. See ``Bundle.open``."""
    return Bundle.open(path, mode, truncate)


def delete_bundle(path: PathLike) -> None:
    """
    Delete a bundle's index and data files.

    Both deletions are attempted. Files that are already gone are ignored.

    Raises:
        BundleIOError: One or both files could not be removed
    """
    failures = []
    for file_path in (Path(path), bundle_data_path(path)):
        try:
            file_path.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            failures.append((file_path, e))

    if failures:
        raise BundleIOError(
            "Failed to delete " + ", ".join(str(p) for p, _ in failures),
            path=str(path),
            cause=failures[0][1],
            context={"failed_paths": [str(p) for p, _ in failures]},
        )
