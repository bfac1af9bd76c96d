"""One-time tokens for OTP, magic link, password reset and email verification."""

import logging
import secrets
from datetime import timedelta
from uuid import UUID

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.types import ConsumeResult, OneTimeToken, TokenPurpose
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class TokenStore:
    """Issue and redeem single-use secrets.

    A token is 32 bytes of urlsafe randomness. OTP flows also get a 6-digit
    code, which is only unique per user and so is only redeemable together
    with the user id.
    """

    def __init__(self, auth_db: AuthDatabase, config: AuthConfig):
        self._auth_db = auth_db
        self._config = config

    def default_ttl_seconds(self, purpose: TokenPurpose) -> int:
        if purpose == TokenPurpose.OTP:
            return self._config.otp_expiry_seconds
        if purpose == TokenPurpose.MAGIC_LINK:
            return self._config.magic_link_expiry_seconds
        if purpose == TokenPurpose.RESET_PASSWORD:
            return self._config.password_reset_expiry_minutes * 60
        return self._config.email_verification_expiry_minutes * 60

    def create(
        self,
        user_id: UUID,
        purpose: TokenPurpose,
        ttl_seconds: int | None = None,
        short_code: bool | None = None,
    ) -> str:
        """Store a new token.

        short_code defaults to on for OTP, so the value returned for an OTP
        is always redeemable as a code.

        Returns:
            The 6-digit code if short_code is set, otherwise the token.
        """
        if short_code is None:
            short_code = purpose == TokenPurpose.OTP
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds(purpose)
        token = OneTimeToken(
            token=secrets.token_urlsafe(32),
            code=f"{secrets.randbelow(1_000_000):06d}" if short_code else None,
            expires_at=now_utc() + timedelta(seconds=ttl),
            user_id=user_id,
            purpose=purpose,
        )
        self._auth_db.insert_one_time_token(token)
        return token.code if short_code else token.token

    def consume(
        self,
        token: str | None = None,
        code: str | None = None,
        user_id: UUID | None = None,
        purpose: TokenPurpose | None = None,
    ) -> ConsumeResult:
        """Redeem a token exactly once.

        Unknown, expired, already-used and wrong-purpose tokens all come back
        as consumed=False.
        """
        if not token and not code:
            return ConsumeResult(consumed=False)
        if not token and user_id is None:
            logger.warning("One-time code redemption attempted without user id")
            return ConsumeResult(consumed=False)

        owner = self._auth_db.consume_one_time_token(
            now_utc(),
            token=token,
            code=code,
            user_id=user_id,
            purpose=purpose,
        )
        if owner is None:
            return ConsumeResult(consumed=False)
        return ConsumeResult(consumed=True, user_id=owner)

    def peek(self, token: str, purpose: TokenPurpose) -> bool:
        """True if the token exists for purpose and has not expired. Does not consume."""
        if not token:
            return False
        return self._auth_db.one_time_token_exists(token, purpose, now_utc())

    def purge_expired(self) -> int:
        count = self._auth_db.delete_expired_tokens(now_utc())
        if count:
            logger.info(f"Purged {count} expired one-time tokens")
        return count
