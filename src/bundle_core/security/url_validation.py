"""
URL validation for image downloads.

URL lists come from outside the pipeline, so each entry is checked before a
connection is attempted: only http/https with a hostname, and optionally no
loopback, link-local or cloud metadata hosts.
"""

import ipaddress
from typing import Set, Tuple
from urllib.parse import urlparse


# Allowed schemes for image downloads
ALLOWED_SCHEMES: Set[str] = {"https", "http"}

# Hosts to block (metadata endpoints, localhost, etc.)
BLOCKED_HOSTS: Set[str] = {
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "metadata.google.internal",
    "metadata.aws.internal",
    "169.254.169.254",
}

# Private IP ranges (RFC 1918 + link-local + loopback + IPv6)
PRIVATE_RANGES = [
    # IPv4 private ranges
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),  # Link-local (cloud metadata)
    ipaddress.ip_network("127.0.0.0/8"),  # Loopback
    # IPv6 private ranges
    ipaddress.ip_network("::1/128"),  # IPv6 loopback
    ipaddress.ip_network("fe80::/10"),  # IPv6 link-local
    ipaddress.ip_network("fc00::/7"),  # IPv6 unique local addresses
]


def validate_image_url(url: str, block_private_hosts: bool = False) -> Tuple[bool, str]:
    """
    Validate an image URL before connecting.

    Args:
        url: URL to validate
        block_private_hosts: Reject loopback/private/metadata hosts

    Returns:
        (is_valid, error_message)
        - (True, "") if valid
        - (False, "error description") if invalid

    Examples:
        >>> validate_image_url("ftp://example.com/a.jpg")
        (False, 'Unsupported scheme: ftp')

        >>> validate_image_url("https://example.com/a.jpg")
        (True, '')
    """
    if not url:
        return False, "Empty URL"

    try:
        parsed = urlparse(url)
    except ValueError as e:
        return False, f"Invalid URL format: {e}"

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        return False, f"Unsupported scheme: {parsed.scheme or '(none)'}"

    try:
        hostname = parsed.hostname
    except ValueError as e:
        return False, f"Invalid URL format: {e}"
    if not hostname:
        return False, "No hostname in URL"

    if block_private_hosts and is_private_ip(hostname):
        return False, f"Blocked host: {hostname}"

    return True, ""


def is_private_ip(hostname: str) -> bool:
    """
    Check if hostname is a private/internal IP address or blocked host.

    Args:
        hostname: Hostname or IP address to check

    Returns:
        True if hostname is a private IP or in BLOCKED_HOSTS

    Note:
        This function does NOT perform DNS resolution. It only checks
        whether the hostname string itself is a private IP.
    """
    if hostname.lower() in BLOCKED_HOSTS:
        return True

    try:
        ip = ipaddress.ip_address(hostname)
    except ValueError:
        # Not an IP address, hostname only
        return False

    return any(ip in network for network in PRIVATE_RANGES)
