"""Rate limiting for auth endpoints.

Fixed-window counters in Valkey: the first hit in a window sets the TTL,
later hits only increment. Keyed by user id when the request is
authenticated, otherwise by client IP.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from starlette.requests import Request

from clients.valkey_client import ValkeyClient
from auth.config import AuthConfig
from auth.exceptions import RateLimitedError
from auth.request_info import get_client_ip

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """How many hits a key gets per window."""

    name: str
    limit: int
    window_seconds: int
    message: str


LOGIN_LIMIT = RateLimitPolicy(
    name="login",
    limit=5,
    window_seconds=15 * 60,
    message="Too many login attempts. Please try again in 15 minutes.",
)
REGISTER_LIMIT = RateLimitPolicy(
    name="register",
    limit=3,
    window_seconds=60 * 60,
    message="Too many registration attempts. Please try again in 1 hour.",
)
VERIFICATION_LIMIT = RateLimitPolicy(
    name="verification",
    limit=3,
    window_seconds=5 * 60,
    message="Too many verification attempts. Please try again in 5 minutes.",
)
EMAIL_SEND_LIMIT = RateLimitPolicy(
    name="email_send",
    limit=5,
    window_seconds=60 * 60,
    message="Too many emails sent. Please try again in 1 hour.",
)


class RateLimiter:
    """Fixed-window rate limiting using Valkey."""

    KEY_PREFIX = "ratelimit:"

    def __init__(self, valkey: ValkeyClient, config: AuthConfig):
        self._valkey = valkey
        self._config = config

    def _key(self, policy: RateLimitPolicy, identity: str) -> str:
        return f"{self.KEY_PREFIX}{policy.name}:{identity}"

    @staticmethod
    def identity_for(request: Request) -> str:
        """user:<id> once the auth middleware resolved a user, else client IP."""
        user = getattr(request.state, "user", None)
        if user is not None:
            return f"user:{user.id}"
        return get_client_ip(request) or "unknown"

    def check(self, policy: RateLimitPolicy, identity: str) -> None:
        """Count one hit against identity.

        Raises:
            RateLimitedError: If this hit exceeds the policy limit.
        """
        if not self._config.rate_limit_enabled:
            return

        key = self._key(policy, identity)
        count = self._valkey.incr(key)

        if count == 1:
            self._valkey.expire(key, policy.window_seconds)

        if count > policy.limit:
            ttl = self._valkey.ttl(key)
            if ttl < 0:
                # Counter lost its TTL (crash between INCR and EXPIRE)
                self._valkey.expire(key, policy.window_seconds)
                ttl = policy.window_seconds
            logger.info(f"Rate limit {policy.name} hit for {identity}")
            raise RateLimitedError(retry_after_seconds=max(ttl, 1), message=policy.message)

    def reset(self, policy: RateLimitPolicy, identity: str) -> None:
        self._valkey.delete(self._key(policy, identity))

    def get_remaining_attempts(self, policy: RateLimitPolicy, identity: str) -> int:
        current = self._valkey.get(self._key(policy, identity))
        if current is None:
            return policy.limit
        return max(policy.limit - int(current), 0)

    def dependency(self, policy: RateLimitPolicy) -> Callable[[Request], None]:
        """FastAPI dependency enforcing policy for the calling client."""

        def enforce(request: Request) -> None:
            self.check(policy, self.identity_for(request))

        return enforce
