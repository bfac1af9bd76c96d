"""Tests for TokenStore - single-use tokens and OTP codes."""

from datetime import timedelta
from uuid import uuid4

from auth.types import TokenPurpose
from utils.timezone import now_utc


class TestCreate:
    def test_returns_url_safe_token(self, token_store, auth_db, user):
        token = token_store.create(user.id, TokenPurpose.MAGIC_LINK)

        assert len(token) >= 40
        assert auth_db.tokens[0].token == token
        assert auth_db.tokens[0].code is None

    def test_short_code_returns_six_digits(self, token_store, auth_db, user):
        code = token_store.create(user.id, TokenPurpose.OTP, short_code=True)

        assert len(code) == 6
        assert code.isdigit()
        assert auth_db.tokens[0].code == code

    def test_otp_defaults_to_code(self, token_store, auth_db, user):
        code = token_store.create(user.id, TokenPurpose.OTP)

        assert code.isdigit()
        assert auth_db.tokens[0].code == code

    def test_otp_code_can_be_disabled(self, token_store, auth_db, user):
        token = token_store.create(user.id, TokenPurpose.OTP, short_code=False)

        assert auth_db.tokens[0].token == token
        assert auth_db.tokens[0].code is None

    def test_default_ttl_per_purpose(self, token_store, auth_db, user, config):
        before = now_utc()
        token_store.create(user.id, TokenPurpose.RESET_PASSWORD)

        expires_at = auth_db.tokens[0].expires_at
        expected = before + timedelta(minutes=config.password_reset_expiry_minutes)
        assert abs((expires_at - expected).total_seconds()) < 5

    def test_explicit_ttl(self, token_store, auth_db, user):
        before = now_utc()
        token_store.create(user.id, TokenPurpose.OTP, ttl_seconds=600)

        assert abs((auth_db.tokens[0].expires_at - before).total_seconds() - 600) < 5


class TestConsume:
    def test_token_consumed_once(self, token_store, user):
        token = token_store.create(user.id, TokenPurpose.MAGIC_LINK)

        first = token_store.consume(token=token, purpose=TokenPurpose.MAGIC_LINK)
        second = token_store.consume(token=token, purpose=TokenPurpose.MAGIC_LINK)

        assert first.consumed is True
        assert first.user_id == user.id
        assert second.consumed is False

    def test_code_requires_matching_user(self, token_store, user):
        code = token_store.create(user.id, TokenPurpose.OTP, short_code=True)

        assert token_store.consume(code=code, user_id=uuid4()).consumed is False
        assert token_store.consume(code=code, user_id=user.id).consumed is True

    def test_token_scoped_to_given_user(self, token_store, user):
        token = token_store.create(user.id, TokenPurpose.MAGIC_LINK)

        assert token_store.consume(token=token, user_id=uuid4()).consumed is False
        assert token_store.consume(token=token, user_id=user.id).consumed is True

    def test_code_without_user_id_rejected(self, token_store, user):
        code = token_store.create(user.id, TokenPurpose.OTP, short_code=True)

        assert token_store.consume(code=code).consumed is False

    def test_wrong_purpose_not_consumed(self, token_store, user):
        token = token_store.create(user.id, TokenPurpose.RESET_PASSWORD)

        assert token_store.consume(token=token, purpose=TokenPurpose.MAGIC_LINK).consumed is False
        assert token_store.consume(token=token, purpose=TokenPurpose.RESET_PASSWORD).consumed is True

    def test_expired_token_not_consumed(self, token_store, user):
        token = token_store.create(user.id, TokenPurpose.MAGIC_LINK, ttl_seconds=-1)

        assert token_store.consume(token=token).consumed is False

    def test_nothing_to_consume(self, token_store):
        assert token_store.consume().consumed is False


class TestPeekAndPurge:
    def test_peek_does_not_consume(self, token_store, user):
        token = token_store.create(user.id, TokenPurpose.RESET_PASSWORD)

        assert token_store.peek(token, TokenPurpose.RESET_PASSWORD) is True
        assert token_store.peek(token, TokenPurpose.RESET_PASSWORD) is True
        assert token_store.peek(token, TokenPurpose.MAGIC_LINK) is False

    def test_purge_expired(self, token_store, auth_db, user):
        token_store.create(user.id, TokenPurpose.MAGIC_LINK, ttl_seconds=-1)
        token_store.create(user.id, TokenPurpose.MAGIC_LINK)

        assert token_store.purge_expired() == 1
        assert len(auth_db.tokens) == 1
