"""Tests for auth/types.py - domain models and request bodies."""

from datetime import timedelta
from uuid import uuid4

import pytest
from pydantic import ValidationError

from auth.types import (
    ForgotPasswordVerifyRequest,
    OTPVerifyRequest,
    Session,
    SessionResponse,
    User,
    UserMetadata,
    UserResponse,
)
from utils.timezone import now_utc


class TestUserMetadata:
    def test_unknown_keys_rejected(self):
        with pytest.raises(ValidationError):
            UserMetadata.model_validate({"name": "Ada", "shoe_size": 9})

    def test_all_fields_optional(self):
        assert UserMetadata().model_dump(exclude_none=True) == {}


class TestResponses:
    """Client-facing shapes leave secrets out."""

    def test_user_response_has_no_password_hash(self):
        now = now_utc()
        user = User(
            id=uuid4(),
            email="ada@example.com",
            password_hash="$argon2id$secret",
            joined_at=now,
            updated_at=now,
        )

        dumped = UserResponse.from_user(user).model_dump()

        assert "password_hash" not in dumped
        assert dumped["email"] == "ada@example.com"

    def test_password_hash_not_in_repr(self):
        now = now_utc()
        user = User(id=uuid4(), email="ada@example.com", password_hash="hunter2", joined_at=now, updated_at=now)
        assert "hunter2" not in repr(user)

    def test_session_response_has_no_session_id(self):
        session = Session(
            id="secret-session-id",
            revoke_id="revoke-me",
            user_id=uuid4(),
            expires_at=now_utc() + timedelta(days=1),
        )

        dumped = SessionResponse.from_session(session).model_dump()

        assert "id" not in dumped
        assert dumped["revoke_id"] == "revoke-me"


class TestRequestBodies:
    def test_otp_verify_accepts_camel_case(self):
        user_id = uuid4()
        body = OTPVerifyRequest.model_validate({"userId": str(user_id), "code": "123456"})
        assert body.user_id == user_id

    def test_new_password_length_bounds(self):
        with pytest.raises(ValidationError):
            ForgotPasswordVerifyRequest.model_validate({"token": "t", "newPassword": "short"})
        with pytest.raises(ValidationError):
            ForgotPasswordVerifyRequest.model_validate({"token": "t", "newPassword": "x" * 256})
