"""Client address and device helpers for session metadata."""

import ipaddress
import re

from starlette.requests import Request

# Checked in order; the first header holding a usable address wins
CLIENT_IP_HEADERS = (
    "x-forwarded-for",
    "x-real-ip",
    "x-client-ip",
    "cf-connecting-ip",
    "x-forwarded",
    "forwarded-for",
    "forwarded",
)

DEVICE_PATTERNS = (
    (re.compile(r"android", re.IGNORECASE), "Android"),
    (re.compile(r"iPhone|iPad|iPod", re.IGNORECASE), "iOS"),
    (re.compile(r"macintosh|mac os", re.IGNORECASE), "Mac"),
    (re.compile(r"windows", re.IGNORECASE), "Windows"),
    (re.compile(r"linux", re.IGNORECASE), "Linux"),
)


def is_public_ip(value: str) -> bool:
    """True for a syntactically valid, non-loopback IPv4/IPv6 address."""
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return False
    return not address.is_loopback


def get_client_ip(request: Request) -> str | None:
    """
    Best-effort client address.

    Proxy headers are taken at face value (first entry of comma-separated
    lists). Falls back to the socket peer.
    """
    for header in CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if not value:
            continue
        candidate = value.split(",")[0].strip()
        if is_public_ip(candidate):
            return candidate

    if request.client and request.client.host:
        return request.client.host
    return None


def get_user_agent_hash(user_agent: str | None) -> str:
    """Value stored in sessions.user_agent_hash.

    This is the raw user-agent string, so device names can be derived later.
    """
    return user_agent or "unknown"


def get_device_name(user_agent: str | None) -> str:
    if not user_agent:
        return "Unknown Device"
    for pattern, name in DEVICE_PATTERNS:
        if pattern.search(user_agent):
            return name
    return "Device"
