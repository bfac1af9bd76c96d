"""
Valkey (Redis-compatible) client for rate limiting counters.

Thin wrapper around redis-py exposing only the counter operations the
rate limiter needs. Connection URL comes from Vault. Connection failures
raise; nothing here returns a fallback value.
"""

import logging

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Counter store backed by Valkey.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        count = client.incr("ratelimit:login:203.0.113.7")
        client.expire("ratelimit:login:203.0.113.7", 900)
    """

    def __init__(self, url: str):
        """
        Connect and ping once so a bad URL fails at startup.

        Raises:
            redis.ConnectionError: If Valkey is unreachable
        """
        self._client = redis.from_url(url, decode_responses=True)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def get(self, key: str) -> str | None:
        return self._client.get(key)

    def incr(self, key: str) -> int:
        """Atomically add one, creating the key at 1. Returns the new count."""
        return self._client.incr(key)

    def expire(self, key: str, seconds: int) -> bool:
        """Set key TTL. False if the key doesn't exist."""
        return bool(self._client.expire(key, seconds))

    def ttl(self, key: str) -> int:
        """Seconds left; -1 for no expiry, -2 for a missing key."""
        return self._client.ttl(key)

    def delete(self, key: str) -> bool:
        """True if the key existed."""
        return self._client.delete(key) > 0

    def close(self) -> None:
        self._client.close()
        logger.info("ValkeyClient closed")
