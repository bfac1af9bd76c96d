"""Tests for AuthService - core auth orchestration."""

from urllib.parse import parse_qs, urlsplit
from uuid import uuid4

import pytest

from auth.exceptions import (
    BadRequestError,
    ConflictError,
    InternalServerError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
)
from auth.security_logger import SecurityEvent
from auth.service import validate_email, validate_password
from auth.types import TokenPurpose, UserMetadata
from clients.email_client import EmailGatewayError

TEST_PASSWORD = "correct-horse"


def logged_events(security_logger) -> list[SecurityEvent]:
    return [c.args[0] for c in security_logger.log.call_args_list]


def token_from_link(link: str) -> str:
    return parse_qs(urlsplit(link).query)["token"][0]


class TestValidation:
    def test_email_normalized(self):
        assert validate_email("  Ada@Example.COM ") == "ada@example.com"

    @pytest.mark.parametrize("email", [None, "", "not-an-email", "a@"])
    def test_bad_email(self, email):
        with pytest.raises(BadRequestError, match="Invalid email"):
            validate_email(email)

    @pytest.mark.parametrize("password", [None, "", "12345", "x" * 256])
    def test_bad_password(self, password):
        with pytest.raises(BadRequestError, match="Invalid password"):
            validate_password(password)

    def test_password_bounds_inclusive(self):
        assert validate_password("123456") == "123456"
        assert validate_password("x" * 255) == "x" * 255


class TestEmailLogin:
    def test_valid_credentials(self, auth_service, user, security_logger):
        result = auth_service.email_login(
            "USER@example.com", TEST_PASSWORD, ip_address="203.0.113.7", user_agent="Mozilla/5.0 (X11; Linux)"
        )

        assert result.user.id == user.id
        assert result.session.user_id == user.id
        assert result.session.ip_address == "203.0.113.7"
        assert result.session.user_agent_hash == "Mozilla/5.0 (X11; Linux)"
        assert logged_events(security_logger) == [
            SecurityEvent.LOGIN_SUCCEEDED,
            SecurityEvent.SESSION_CREATED,
        ]

    def test_wrong_password(self, auth_service, user, security_logger):
        with pytest.raises(InvalidCredentialsError):
            auth_service.email_login(user.email, "wrong-password")

        assert logged_events(security_logger) == [SecurityEvent.LOGIN_FAILED]

    def test_unknown_email_same_error(self, auth_service):
        with pytest.raises(InvalidCredentialsError) as exc_info:
            auth_service.email_login("ghost@example.com", TEST_PASSWORD)

        assert exc_info.value.message == "Incorrect email or password."

    def test_malformed_email(self, auth_service):
        with pytest.raises(BadRequestError, match="Invalid email"):
            auth_service.email_login("nope", TEST_PASSWORD)


class TestEmailRegister:
    def test_creates_user_and_session(self, auth_service, auth_db, password_hasher):
        result = auth_service.email_register(
            "New@Example.com", "s3cret-pass", metadata=UserMetadata(name="New Person")
        )

        assert result.user.email == "new@example.com"
        assert result.user.email_verified is False
        assert result.user.metadata.name == "New Person"
        assert password_hasher.verify_password(result.user.password_hash, "s3cret-pass")
        assert result.session.id in auth_db.sessions

    def test_no_verification_email(self, auth_service, email_client):
        auth_service.email_register("new@example.com", "s3cret-pass")

        email_client.send_email_verification.assert_not_called()

    def test_duplicate_email(self, auth_service, user):
        with pytest.raises(ConflictError, match="already registered"):
            auth_service.email_register("user@EXAMPLE.com", "s3cret-pass")

    def test_short_password(self, auth_service):
        with pytest.raises(BadRequestError, match="Invalid password"):
            auth_service.email_register("new@example.com", "12345")


class TestOTPLogin:
    def test_send_and_verify(self, auth_service, user, email_client):
        user_id = auth_service.email_otp_login_send(user.email)

        email, code = email_client.send_otp.call_args.args
        assert user_id == user.id
        assert email == user.email

        result = auth_service.verify_otp_or_token_login(user_id=user_id, code=code)
        assert result.user.id == user.id

    def test_code_single_use(self, auth_service, user, email_client):
        auth_service.email_otp_login_send(user.email)
        code = email_client.send_otp.call_args.args[1]
        auth_service.verify_otp_or_token_login(user_id=user.id, code=code)

        with pytest.raises(InvalidTokenError):
            auth_service.verify_otp_or_token_login(user_id=user.id, code=code)

    def test_wrong_code(self, auth_service, user, security_logger):
        auth_service.email_otp_login_send(user.email)

        with pytest.raises(InvalidTokenError):
            auth_service.verify_otp_or_token_login(user_id=user.id, code="not-it")

        assert SecurityEvent.TOKEN_LOGIN_FAILED in logged_events(security_logger)

    def test_unknown_email(self, auth_service):
        with pytest.raises(NotFoundError, match="User not found"):
            auth_service.email_otp_login_send("ghost@example.com")

    def test_email_failure_propagates(self, auth_service, user, email_client):
        email_client.send_otp.side_effect = EmailGatewayError("down")

        with pytest.raises(EmailGatewayError):
            auth_service.email_otp_login_send(user.email)

    def test_stored_otp_redeemable_once_with_user_id(self, auth_service, token_store, user):
        code = token_store.create(user.id, TokenPurpose.OTP)

        result = auth_service.verify_otp_or_token_login(user_id=user.id, code=code)

        assert result.user.id == user.id
        with pytest.raises(InvalidTokenError):
            auth_service.verify_otp_or_token_login(user_id=user.id, code=code)

    def test_token_for_another_user_rejected(self, auth_service, token_store, make_user, user):
        other = make_user("other@example.com")
        token = token_store.create(user.id, TokenPurpose.MAGIC_LINK)

        with pytest.raises(InvalidTokenError):
            auth_service.verify_otp_or_token_login(
                user_id=other.id, token=token, purpose=TokenPurpose.MAGIC_LINK
            )

        result = auth_service.verify_otp_or_token_login(token=token, purpose=TokenPurpose.MAGIC_LINK)
        assert result.user.id == user.id

    def test_token_for_deleted_user(self, auth_service, token_store, auth_db, user):
        token = token_store.create(user.id, TokenPurpose.MAGIC_LINK)
        del auth_db.users[user.id]

        with pytest.raises(InternalServerError):
            auth_service.verify_otp_or_token_login(token=token, purpose=TokenPurpose.MAGIC_LINK)


class TestMagicLink:
    def test_existing_user(self, auth_service, user, email_client):
        auth_service.magic_link_login_send(user.email)

        email, link = email_client.send_magic_link.call_args.args
        assert email == user.email
        assert link.startswith("https://app.example.com/api/auth/login/magic-link/verify?token=")

        result = auth_service.magic_link_login_verify(token_from_link(link))
        assert result.user.id == user.id

    def test_unknown_email_creates_user(self, auth_service, auth_db, email_client, security_logger):
        auth_service.magic_link_login_send("Fresh@Example.com")

        created = auth_db.get_user_by_email("fresh@example.com")
        assert created is not None
        assert created.email_verified is False
        assert SecurityEvent.USER_CREATED in logged_events(security_logger)

    def test_magic_link_token_not_usable_as_reset(self, auth_service, user, email_client):
        auth_service.magic_link_login_send(user.email)
        token = token_from_link(email_client.send_magic_link.call_args.args[1])

        with pytest.raises(InvalidTokenError):
            auth_service.forgot_password_verify(token, "new-password")


class TestPasswordReset:
    def send(self, auth_service, email_client, email):
        auth_service.forgot_password_send(email)
        link = email_client.send_password_reset.call_args.args[1]
        assert link.startswith("https://app.example.com/api/auth/forgot-password/verify?token=")
        return token_from_link(link)

    def test_reset_changes_password_and_revokes_sessions(
        self, auth_service, email_client, session_manager, auth_db, user
    ):
        session_manager.create(user.id)
        session_manager.create(user.id)
        token = self.send(auth_service, email_client, user.email)

        auth_service.forgot_password_verify(token, "brand-new-pass")

        assert [s for s in auth_db.sessions.values() if s.user_id == user.id] == []
        auth_service.email_login(user.email, "brand-new-pass")
        with pytest.raises(InvalidCredentialsError):
            auth_service.email_login(user.email, TEST_PASSWORD)

    def test_validate_reset_token_does_not_consume(self, auth_service, email_client, user):
        token = self.send(auth_service, email_client, user.email)

        auth_service.validate_reset_token(token)
        auth_service.validate_reset_token(token)
        auth_service.forgot_password_verify(token, "brand-new-pass")

        with pytest.raises(InvalidTokenError):
            auth_service.validate_reset_token(token)

    def test_invalid_token(self, auth_service, security_logger):
        with pytest.raises(InvalidTokenError):
            auth_service.forgot_password_verify("bogus", "brand-new-pass")

        assert logged_events(security_logger) == [SecurityEvent.PASSWORD_RESET_FAILED]

    def test_bad_new_password_keeps_token(self, auth_service, email_client, user):
        token = self.send(auth_service, email_client, user.email)

        with pytest.raises(BadRequestError):
            auth_service.forgot_password_verify(token, "short")

        auth_service.validate_reset_token(token)

    def test_unknown_email(self, auth_service):
        with pytest.raises(NotFoundError):
            auth_service.forgot_password_send("ghost@example.com")


class TestEmailVerification:
    def test_send_and_verify(self, auth_service, email_client, auth_db, user):
        auth_service.email_verification_send(user.email)
        link = email_client.send_email_verification.call_args.args[1]
        assert "/api/auth/verify-email/verify?token=" in link

        verified_id = auth_service.email_verification_verify(token_from_link(link))

        assert verified_id == user.id
        assert auth_db.get_user_by_id(user.id).email_verified is True

    def test_already_verified(self, auth_service, make_user):
        verified = make_user("done@example.com", email_verified=True)

        with pytest.raises(BadRequestError, match="already verified"):
            auth_service.email_verification_send(verified.email)

    def test_invalid_token(self, auth_service):
        with pytest.raises(InvalidTokenError):
            auth_service.email_verification_verify("bogus")


class TestOAuthLogging:
    def test_failed_callback_logged(self, auth_service, security_logger):
        result = auth_service.complete_oauth_login("github", code="c", state="a", stored_state="b")

        assert result.session is None
        assert logged_events(security_logger) == [SecurityEvent.OAUTH_LOGIN_FAILED]

    def test_begin_delegates(self, auth_service):
        authorization = auth_service.begin_oauth_login("github", "/app")

        assert authorization.authorization_url.startswith("https://github.com/login/oauth/authorize?")


class TestSessionsAndProfile:
    def test_logout(self, auth_service, session_manager, user, security_logger):
        session = session_manager.create(user.id)

        auth_service.logout(session.id, user_id=user.id)

        assert session_manager.validate(session.id).session is None
        assert logged_events(security_logger) == [SecurityEvent.SESSION_REVOKED]

    def test_logout_unknown_session(self, auth_service):
        auth_service.logout("not-a-session")

    def test_revoke_session(self, auth_service, session_manager, user):
        session = session_manager.create(user.id)

        auth_service.revoke_session(user.id, session.revoke_id)

        assert session_manager.validate(session.id).session is None

    def test_revoke_other_users_session(self, auth_service, session_manager, make_user, user):
        other = make_user("other@example.com")
        session = session_manager.create(other.id)

        with pytest.raises(NotFoundError, match="Session not found"):
            auth_service.revoke_session(user.id, session.revoke_id)

    def test_user_details(self, auth_service, session_manager, auth_db, user):
        current = session_manager.create(user.id, user_agent_hash="Mozilla/5.0 (iPhone; CPU iPhone OS 17_0)")
        session_manager.create(user.id, user_agent_hash="Mozilla/5.0 (Windows NT 10.0)")
        auth_db.link_oauth_account("github", "42", user.id)

        details = auth_service.get_user_details(user.id, current_session_id=current.id)

        assert [a.provider_id for a in details.oauth_accounts] == ["github"]
        assert len(details.active_sessions) == 2
        by_current = {s.is_current: s for s in details.active_sessions}
        assert by_current[True].device_name == "iOS"
        assert by_current[True].display_id == f"***{current.id[-4:]}"
        assert by_current[False].device_name == "Windows"

    def test_user_details_unknown_user(self, auth_service):
        with pytest.raises(NotFoundError):
            auth_service.get_user_details(uuid4())

    def test_update_metadata_merges(self, auth_service, make_user, security_logger):
        existing = make_user("meta@example.com", metadata=UserMetadata(name="Old Name", username="old"))

        updated = auth_service.update_user_metadata(existing.id, UserMetadata(name="New Name"))

        assert updated.metadata.name == "New Name"
        assert updated.metadata.username == "old"
        assert security_logger.log.call_args.kwargs["details"] == {"fields": ["name"]}
