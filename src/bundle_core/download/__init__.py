"""
Async image download module.

Provides HTTP fetch logic decoupled from bundle storage.

Clean interface: URL -> FetchOutcome (tagged, never raises per-URL errors).
"""

from bundle_core.download.http_client import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_MAX_IMAGE_BYTES,
    DEFAULT_READ_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    USER_AGENT,
    ImageFetcher,
    create_session,
)
from bundle_core.download.models import FetchOutcome, FetchStatus

__all__ = [
    "DEFAULT_CONNECT_TIMEOUT",
    "DEFAULT_MAX_IMAGE_BYTES",
    "DEFAULT_READ_TIMEOUT",
    "DEFAULT_REQUEST_TIMEOUT",
    "USER_AGENT",
    "FetchOutcome",
    "FetchStatus",
    "ImageFetcher",
    "create_session",
]
