"""Tests for bundle index encoding."""

import pytest

from bundle_core.bundle.format import (
    FORMAT_VERSION,
    HEADER_SIZE,
    MAGIC,
    RECORD_SIZE,
    ImageType,
    IndexRecord,
    bundle_data_path,
    decode_index,
    encode_header,
    encode_records,
)
from bundle_core.errors.exceptions import CorruptBundleError


class TestIndexLayout:
    """Tests for the fixed header and record layout."""

    def test_sizes(self):
        """Header and record sizes are fixed."""
        assert HEADER_SIZE == 12
        assert RECORD_SIZE == 17

    def test_header_bytes(self):
        """Header holds magic, version and a zero pad."""
        header = encode_header()
        assert header[:8] == MAGIC
        assert int.from_bytes(header[8:10], "big") == FORMAT_VERSION
        assert header[10:12] == b"\x00\x00"

    def test_record_is_big_endian(self):
        """Record fields are written big-endian."""
        raw = encode_records([IndexRecord(0, 258, ImageType.PNG)])
        assert raw == (0).to_bytes(8, "big") + (258).to_bytes(8, "big") + b"\x02"

    def test_data_path(self):
        """The data file sits next to the index with a .dat suffix."""
        assert str(bundle_data_path("/tmp/out.bundle")) == "/tmp/out.bundle.dat"

    def test_shifted_record(self):
        """Shifting moves the offset and keeps length and type."""
        record = IndexRecord(10, 5, ImageType.JPEG)
        assert record.end == 15
        assert record.shifted(100) == IndexRecord(110, 5, ImageType.JPEG)


class TestDecodeIndex:
    """Tests for decode_index."""

    def test_decodes_records(self):
        """Encoded records decode back in order."""
        records = [
            IndexRecord(0, 100, ImageType.JPEG),
            IndexRecord(100, 40, ImageType.PNG),
        ]
        decoded, trailing = decode_index(encode_header() + encode_records(records))
        assert decoded == records
        assert trailing == 0

    def test_reports_trailing_bytes(self):
        """Bytes short of a full record are counted, not decoded."""
        raw = encode_header() + encode_records([IndexRecord(0, 3, ImageType.JPEG)]) + b"\x01\x02"
        decoded, trailing = decode_index(raw)
        assert len(decoded) == 1
        assert trailing == 2

    @pytest.mark.parametrize(
        "raw",
        [
            b"short",
            b"BADMAGIC" + b"\x00\x01\x00\x00",
            MAGIC + b"\x00\x09\x00\x00",
        ],
        ids=["short-header", "bad-magic", "unknown-version"],
    )
    def test_bad_header(self, raw):
        """Short, foreign or future-version headers are corrupt."""
        with pytest.raises(CorruptBundleError):
            decode_index(raw)

    def test_unknown_image_type(self):
        """An unknown image type code is corrupt."""
        raw = encode_header() + (0).to_bytes(8, "big") + (4).to_bytes(8, "big") + b"\x07"
        with pytest.raises(CorruptBundleError, match="Unknown image type"):
            decode_index(raw)

    def test_non_contiguous_offsets(self):
        """A gap between records is corrupt."""
        records = [
            IndexRecord(0, 10, ImageType.JPEG),
            IndexRecord(11, 10, ImageType.JPEG),
        ]
        with pytest.raises(CorruptBundleError, match="does not follow"):
            decode_index(encode_header() + encode_records(records))
