"""
pytest configuration for bundler tests.

Adds src directory to Python path for imports and provides shared
fixtures: real JPEG/PNG bytes generated with Pillow, a scripted fetcher
and a config rooted in tmp_path.
"""

import io
import sys
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from PIL import Image  # noqa: E402

from bundle_core.bundle import ImageType  # noqa: E402
from bundle_core.download.models import FetchOutcome, FetchStatus  # noqa: E402
from bundle_core.errors.exceptions import ErrorCategory  # noqa: E402
from bundle_core.validation.image_validator import validate  # noqa: E402
from bundle_pipeline.config import BundlerConfig  # noqa: E402


def make_image_bytes(fmt: str = "JPEG", size=(8, 6), color=(200, 40, 40)) -> bytes:
    """Encode a small solid-color image."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def image_factory():
    """Factory for encoded test images: image_factory("PNG", size=(4, 4))."""
    return make_image_bytes


@pytest.fixture
def jpeg_bytes():
    """A 16x12 JPEG."""
    return make_image_bytes("JPEG", size=(16, 12))


@pytest.fixture
def png_bytes():
    """A 10x20 PNG."""
    return make_image_bytes("PNG", size=(10, 20), color=(10, 120, 250))


class StubFetcher:
    """
    Fetcher that answers from the URL instead of the network.

    URL conventions (anything after the host):
        *.jpg / *.png   accepted image
        *bad-header*    REJECTED_BAD_HEADER
        *not-image*     REJECTED_UNSUPPORTED_TYPE
        *unreachable*   CONNECTION_ERROR
        *dropped*       TRANSFER_ERROR
        *explode*       raises RuntimeError
    """

    def __init__(self):
        self.calls = []
        self.closed = False

    async def fetch(self, url: str) -> FetchOutcome:
        self.calls.append(url)

        if "explode" in url:
            raise RuntimeError(f"unexpected failure for {url}")
        if "unreachable" in url:
            return FetchOutcome.network_failure(
                url, FetchStatus.CONNECTION_ERROR, "Connection refused", 3,
                error_category=ErrorCategory.TRANSIENT,
            )
        if "dropped" in url:
            return FetchOutcome.network_failure(
                url, FetchStatus.TRANSFER_ERROR, "Stream reset", 5,
                error_category=ErrorCategory.TRANSIENT, http_status=200,
            )
        if "not-image" in url:
            return FetchOutcome.rejected(
                url, FetchStatus.REJECTED_UNSUPPORTED_TYPE,
                "Unsupported content type [text/html]", 2,
                content_type="text/html", http_status=200,
            )
        if "bad-header" in url:
            return FetchOutcome.rejected(
                url, FetchStatus.REJECTED_BAD_HEADER, "Failed to parse JPEG header", 2,
                content_type="image/jpeg", http_status=200, image_type=ImageType.JPEG,
            )

        fmt, content_type = ("PNG", "image/png") if url.endswith(".png") else ("JPEG", "image/jpeg")
        # Width varies with the URL
        width = 4 + (sum(url.encode()) % 29)
        body = make_image_bytes(fmt, size=(width, 5))
        result = validate(content_type, io.BytesIO(body))
        assert result.ok
        return FetchOutcome.accepted_outcome(
            url=url,
            image_type=result.image_type,
            header=result.header,
            stream=result.stream,
            size=len(body),
            content_type=content_type,
            http_status=200,
            elapsed_ms=7,
        )

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def stub_fetcher():
    """The StubFetcher class; call it for a fresh instance."""
    return StubFetcher


@pytest.fixture
def bundler_config(tmp_path):
    """Config writing to tmp_path with no error backoff."""
    return BundlerConfig(
        output_path=tmp_path / "final.bundle",
        shard_dir=tmp_path / "shards",
        worker_count=2,
        rollover_threshold=100,
        error_backoff_seconds=0.0,
    )


@pytest.fixture
def recording_sleep():
    """Awaitable sleep replacement that records requested delays."""
    delays = []

    async def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep
