"""
Image fetching over HTTP with aiohttp.

ImageFetcher turns a URL into a FetchOutcome:
- URL check (scheme/host) before connecting
- Short connect timeout, separate read timeout
- Content type checked before the body is read
- Header validated on the buffered body without consuming it
"""

import asyncio
import io
import time
from typing import Optional

import aiohttp

from bundle_core.download.models import FetchOutcome, FetchStatus
from bundle_core.errors.exceptions import (
    ErrorCategory,
    classify_exception,
    classify_http_status,
)
from bundle_core.security.url_validation import validate_image_url
from bundle_core.validation.header import DEFAULT_MAX_HEADER_BYTES
from bundle_core.validation.image_validator import resolve_image_type, validate

# Connect timeout (seconds) - hosts that don't answer quickly are skipped
DEFAULT_CONNECT_TIMEOUT = 10.0

# Socket read timeout (seconds) between body chunks
DEFAULT_READ_TIMEOUT = 60.0

# Upper bound (seconds) on one request, connect through last body byte
DEFAULT_REQUEST_TIMEOUT = 300.0

# Larger bodies are rejected; the whole body is buffered for validation
DEFAULT_MAX_IMAGE_BYTES = 64 * 1024 * 1024

USER_AGENT = "image-bundler/1.0 (+bundle_pipeline)"


def create_session(
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    read_timeout: float = DEFAULT_READ_TIMEOUT,
    user_agent: str = USER_AGENT,
    max_connections: int = 1,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> aiohttp.ClientSession:
    """
    Create an aiohttp session for image downloads.

    Each download worker owns one session with a single connection, so a
    worker never has more than one request in flight.

    Args:
        connect_timeout: Seconds allowed to establish a connection
        read_timeout: Seconds allowed between reads
        user_agent: User-Agent header value
        max_connections: Connection pool size (default: 1)
        request_timeout: Seconds allowed for a whole request, so a host
            trickling bytes cannot hold a worker indefinitely

    Returns:
        Configured ClientSession (caller must close it)
    """
    connector = aiohttp.TCPConnector(
        limit=max_connections,
        limit_per_host=max_connections,
    )
    timeout = aiohttp.ClientTimeout(
        total=request_timeout,
        sock_connect=connect_timeout,
        sock_read=read_timeout,
    )
    return aiohttp.ClientSession(
        connector=connector,
        timeout=timeout,
        headers={"User-Agent": user_agent},
    )


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class ImageFetcher:
    """
    Fetches and validates single images.

    Usage:
        async with ImageFetcher(connect_timeout=5.0) as fetcher:
            outcome = await fetcher.fetch("https://example.com/cat.jpg")
            if outcome.accepted:
                bundle.append_image(outcome.stream, outcome.image_type)

    Session management:
        By default the fetcher creates its session lazily and closes it in
        close(). Pass a session to share one; it is then left open.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
        user_agent: str = USER_AGENT,
        max_header_bytes: int = DEFAULT_MAX_HEADER_BYTES,
        block_private_hosts: bool = False,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
    ):
        self._session = session
        self._owns_session = session is None
        self._connect_timeout = connect_timeout
        self._read_timeout = read_timeout
        self._user_agent = user_agent
        self._max_header_bytes = max_header_bytes
        self._block_private_hosts = block_private_hosts
        self._request_timeout = request_timeout
        self._max_image_bytes = max_image_bytes

    async def __aenter__(self) -> "ImageFetcher":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the session if this fetcher created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = create_session(
                connect_timeout=self._connect_timeout,
                read_timeout=self._read_timeout,
                user_agent=self._user_agent,
                request_timeout=self._request_timeout,
            )
        return self._session

    async def fetch(self, url: str) -> FetchOutcome:
        """
        Fetch one URL and validate the body as an image.

        Per-URL failures are returned as tagged outcomes, not raised.

        Args:
            url: Image URL

        Returns:
            FetchOutcome
        """
        start = time.perf_counter()

        is_valid, error = validate_image_url(
            url, block_private_hosts=self._block_private_hosts
        )
        if not is_valid:
            return FetchOutcome.rejected(
                url, FetchStatus.REJECTED_INVALID_URL, error, _elapsed_ms(start)
            )

        session = self._get_session()
        try:
            async with session.get(url, allow_redirects=True) as response:
                return await self._handle_response(url, response, start)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return FetchOutcome.network_failure(
                url,
                FetchStatus.CONNECTION_ERROR,
                f"Connection error: {type(e).__name__}: {e}",
                _elapsed_ms(start),
                error_category=classify_exception(e),
            )

    async def _handle_response(
        self, url: str, response: aiohttp.ClientResponse, start: float
    ) -> FetchOutcome:
        content_type = response.headers.get("Content-Type")

        if response.status >= 400:
            return FetchOutcome.network_failure(
                url,
                FetchStatus.CONNECTION_ERROR,
                f"HTTP {response.status}",
                _elapsed_ms(start),
                error_category=classify_http_status(response.status),
                http_status=response.status,
                content_type=content_type,
            )

        # Reject before reading the body
        if resolve_image_type(content_type) is None:
            return FetchOutcome.rejected(
                url,
                FetchStatus.REJECTED_UNSUPPORTED_TYPE,
                f"Unrecognized HTTP content type or unsupported image format [{content_type}]",
                _elapsed_ms(start),
                content_type=content_type,
                http_status=response.status,
            )

        if (response.content_length or 0) > self._max_image_bytes:
            return self._too_large(url, response, response.content_length, start)

        try:
            body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            return FetchOutcome.network_failure(
                url,
                FetchStatus.TRANSFER_ERROR,
                f"Network error while reading body: {type(e).__name__}: {e}",
                _elapsed_ms(start),
                error_category=ErrorCategory.TRANSIENT,
                http_status=response.status,
                content_type=content_type,
            )

        if len(body) > self._max_image_bytes:
            return self._too_large(url, response, len(body), start)

        # The body is already in memory, so Pillow may see all of it: JPEG
        # APPn segments and PNG ancillary chunks can precede the frame header
        result = validate(
            content_type,
            io.BytesIO(body),
            max(len(body), self._max_header_bytes),
        )
        if not result.ok:
            return FetchOutcome.rejected(
                url,
                FetchStatus.REJECTED_BAD_HEADER,
                result.reason,
                _elapsed_ms(start),
                content_type=content_type,
                http_status=response.status,
                image_type=result.image_type,
            )

        return FetchOutcome.accepted_outcome(
            url=url,
            image_type=result.image_type,
            header=result.header,
            stream=result.stream,
            size=len(body),
            content_type=content_type,
            http_status=response.status,
            elapsed_ms=_elapsed_ms(start),
        )

    def _too_large(
        self, url: str, response: aiohttp.ClientResponse, size: int, start: float
    ) -> FetchOutcome:
        return FetchOutcome.rejected(
            url,
            FetchStatus.REJECTED_TOO_LARGE,
            f"Image is {size} bytes, limit is {self._max_image_bytes}",
            _elapsed_ms(start),
            content_type=response.headers.get("Content-Type"),
            http_status=response.status,
        )


__all__ = [
    "DEFAULT_CONNECT_TIMEOUT",
    "DEFAULT_MAX_IMAGE_BYTES",
    "DEFAULT_READ_TIMEOUT",
    "DEFAULT_REQUEST_TIMEOUT",
    "ImageFetcher",
    "USER_AGENT",
    "create_session",
]
