"""
Security validation module.

Input validation for URLs read from untrusted URL lists.
"""

from bundle_core.security.url_validation import (
    ALLOWED_SCHEMES,
    BLOCKED_HOSTS,
    PRIVATE_RANGES,
    is_private_ip,
    validate_image_url,
)

__all__ = [
    "validate_image_url",
    "is_private_ip",
    "ALLOWED_SCHEMES",
    "BLOCKED_HOSTS",
    "PRIVATE_RANGES",
]
