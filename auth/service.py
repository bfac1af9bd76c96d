"""Authentication service - orchestrates every login strategy.

Email+password, email OTP, magic link, password reset, email verification
and OAuth all end the same way: a new server-side session for the user.
"""

import logging
from uuid import UUID

from pydantic import EmailStr, TypeAdapter, ValidationError

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.exceptions import (
    BadRequestError,
    ConflictError,
    InternalServerError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
)
from auth.oauth import OAuthAuthorization, OAuthCallbackResult, OAuthExchange
from auth.passwords import PasswordHasher
from auth.request_info import get_device_name, get_user_agent_hash
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.session import SessionManager
from auth.tokens import TokenStore
from auth.types import (
    ActiveSessionSummary,
    AuthenticatedUser,
    TokenPurpose,
    User,
    UserDetails,
    UserMetadata,
)
from clients.email_client import EmailGatewayClient

logger = logging.getLogger(__name__)

PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 255

_email_adapter = TypeAdapter(EmailStr)


def validate_email(email: str | None) -> str:
    """Normalized (stripped, lowercased) email, or BadRequestError."""
    if not email:
        raise BadRequestError("Invalid email")
    try:
        _email_adapter.validate_python(email.strip())
    except ValidationError as e:
        raise BadRequestError("Invalid email", cause=str(e)) from e
    return email.strip().lower()


def validate_password(password: str | None) -> str:
    if not password or not (PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH):
        raise BadRequestError("Invalid password")
    return password


class AuthService:
    """Orchestrates authentication flows.

    Every strategy either returns an AuthenticatedUser (user + fresh
    session) or raises a typed AuthError. Nothing here touches HTTP; the
    routes own cookies and redirects.
    """

    def __init__(
        self,
        config: AuthConfig,
        auth_db: AuthDatabase,
        session_manager: SessionManager,
        token_store: TokenStore,
        oauth: OAuthExchange,
        password_hasher: PasswordHasher,
        email_client: EmailGatewayClient,
        security_logger: SecurityLogger,
    ):
        self._config = config
        self._auth_db = auth_db
        self._session_manager = session_manager
        self._token_store = token_store
        self._oauth = oauth
        self._password_hasher = password_hasher
        self._email_client = email_client
        self._security_logger = security_logger
        self._dummy_hash: str | None = None

    # Helpers

    def _link(self, path: str, token: str) -> str:
        base = self._config.app_base_url.rstrip("/")
        return f"{base}{self._config.api_prefix}{path}?token={token}"

    def _burn_password_check(self, password: str) -> None:
        """Spend the same argon2 work as a real check, so unknown emails aren't faster."""
        if self._dummy_hash is None:
            self._dummy_hash = self._password_hasher.random_password_hash()
        self._password_hasher.verify_password(self._dummy_hash, password)

    def _start_session(
        self,
        user: User,
        ip_address: str | None,
        user_agent: str | None,
    ) -> AuthenticatedUser:
        session = self._session_manager.create(
            user.id,
            ip_address=ip_address,
            user_agent_hash=get_user_agent_hash(user_agent),
        )
        self._security_logger.log(
            SecurityEvent.SESSION_CREATED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return AuthenticatedUser(user=user, session=session)

    def _require_user_by_email(self, email: str) -> User:
        user = self._auth_db.get_user_by_email(validate_email(email))
        if user is None:
            raise NotFoundError("User not found")
        return user

    # Email + password

    def email_login(
        self,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedUser:
        """Log in with email and password.

        Raises:
            BadRequestError: Malformed email or password
            InvalidCredentialsError: Unknown email or wrong password (same message)
        """
        email = validate_email(email)
        validate_password(password)

        user = self._auth_db.get_user_by_email(email)
        if user is None:
            self._burn_password_check(password)
            valid = False
        else:
            valid = self._password_hasher.verify_password(user.password_hash, password)

        if not valid:
            self._security_logger.log(
                SecurityEvent.LOGIN_FAILED,
                email=email,
                user_id=user.id if user else None,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"reason": "user_not_found" if user is None else "wrong_password"},
            )
            raise InvalidCredentialsError()

        self._security_logger.log(
            SecurityEvent.LOGIN_SUCCEEDED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return self._start_session(user, ip_address, user_agent)

    def email_register(
        self,
        email: str,
        password: str,
        metadata: UserMetadata | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedUser:
        """Create an account and log it in. No verification email is sent.

        Raises:
            BadRequestError: Malformed email or password
            ConflictError: Email already registered
        """
        email = validate_email(email)
        validate_password(password)

        if self._auth_db.get_user_by_email(email) is not None:
            raise ConflictError(f"Email {email} is already registered.")

        user = self._auth_db.create_user(
            email=email,
            password_hash=self._password_hasher.hash_password(password),
            metadata=metadata,
        )
        logger.info(f"Registered user {user.id}")
        self._security_logger.log(
            SecurityEvent.USER_CREATED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"method": "email_password"},
        )
        return self._start_session(user, ip_address, user_agent)

    # OTP and magic link

    def email_otp_login_send(self, email: str, ip_address: str | None = None) -> UUID:
        """Email a 6-digit login code.

        Returns:
            The user id; the verify call needs it alongside the code.

        Raises:
            NotFoundError: No account for this email
            EmailGatewayError: Email send failed
        """
        user = self._require_user_by_email(email)
        code = self._token_store.create(user.id, TokenPurpose.OTP, short_code=True)
        self._email_client.send_otp(user.email, code)
        self._security_logger.log(
            SecurityEvent.OTP_SENT,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
        )
        return user.id

    def verify_otp_or_token_login(
        self,
        user_id: UUID | None = None,
        code: str | None = None,
        token: str | None = None,
        purpose: TokenPurpose = TokenPurpose.OTP,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedUser:
        """Redeem an OTP code (with user_id) or a token and log in.

        Raises:
            InvalidTokenError: Unknown, expired, reused or wrong-purpose secret
            InternalServerError: Token redeemed but its user no longer exists
        """
        result = self._token_store.consume(
            token=token,
            code=code,
            user_id=user_id,
            purpose=purpose,
        )
        if not result.consumed:
            self._security_logger.log(
                SecurityEvent.TOKEN_LOGIN_FAILED,
                user_id=user_id,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"purpose": purpose.value},
            )
            raise InvalidTokenError()

        if user_id and result.user_id != user_id:
            logger.warning(f"One-time token for {result.user_id} redeemed with user id {user_id}")
            raise InvalidTokenError()

        user = self._auth_db.get_user_by_id(result.user_id)
        if user is None:
            raise InternalServerError("Something went wrong, user for this token no longer exists.")

        self._security_logger.log(
            SecurityEvent.TOKEN_LOGIN_SUCCEEDED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"purpose": purpose.value},
        )
        return self._start_session(user, ip_address, user_agent)

    def magic_link_login_send(self, email: str, ip_address: str | None = None) -> None:
        """Email a one-click login link, creating the account if needed.

        Raises:
            BadRequestError: Malformed email
            EmailGatewayError: Email send failed
        """
        email = validate_email(email)
        user = self._auth_db.get_user_by_email(email)
        if user is None:
            user = self._auth_db.create_user(
                email=email,
                password_hash=self._password_hasher.random_password_hash(),
            )
            self._security_logger.log(
                SecurityEvent.USER_CREATED,
                email=user.email,
                user_id=user.id,
                ip_address=ip_address,
                details={"method": "magic_link"},
            )

        token = self._token_store.create(user.id, TokenPurpose.MAGIC_LINK)
        self._email_client.send_magic_link(
            user.email, self._link("/auth/login/magic-link/verify", token)
        )
        self._security_logger.log(
            SecurityEvent.MAGIC_LINK_SENT,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
        )

    def magic_link_login_verify(
        self,
        token: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthenticatedUser:
        return self.verify_otp_or_token_login(
            token=token,
            purpose=TokenPurpose.MAGIC_LINK,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    # Password reset

    def forgot_password_send(self, email: str, ip_address: str | None = None) -> None:
        """
        Raises:
            NotFoundError: No account for this email
            EmailGatewayError: Email send failed
        """
        user = self._require_user_by_email(email)
        token = self._token_store.create(user.id, TokenPurpose.RESET_PASSWORD)
        self._email_client.send_password_reset(
            user.email, self._link("/auth/forgot-password/verify", token)
        )
        self._security_logger.log(
            SecurityEvent.PASSWORD_RESET_REQUESTED,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
        )

    def validate_reset_token(self, token: str) -> None:
        """Check a reset link is still usable without spending it."""
        if not self._token_store.peek(token, TokenPurpose.RESET_PASSWORD):
            raise InvalidTokenError()

    def forgot_password_verify(
        self,
        token: str,
        new_password: str,
        ip_address: str | None = None,
    ) -> None:
        """Set a new password and sign the user out everywhere.

        Raises:
            BadRequestError: Malformed password
            InvalidTokenError: Unknown, expired or reused token
        """
        validate_password(new_password)

        result = self._token_store.consume(token=token, purpose=TokenPurpose.RESET_PASSWORD)
        if not result.consumed:
            self._security_logger.log(
                SecurityEvent.PASSWORD_RESET_FAILED,
                ip_address=ip_address,
                details={"reason": "invalid_token"},
            )
            raise InvalidTokenError()

        self._auth_db.update_password(
            result.user_id, self._password_hasher.hash_password(new_password)
        )
        revoked = self._session_manager.invalidate_all_for_user(result.user_id)

        self._security_logger.log(
            SecurityEvent.PASSWORD_RESET_COMPLETED,
            user_id=result.user_id,
            ip_address=ip_address,
            details={"sessions_revoked": revoked},
        )

    # Email verification

    def email_verification_send(self, email: str, ip_address: str | None = None) -> None:
        """
        Raises:
            NotFoundError: No account for this email
            BadRequestError: Already verified
            EmailGatewayError: Email send failed
        """
        user = self._require_user_by_email(email)
        if user.email_verified:
            raise BadRequestError("Email is already verified.")

        token = self._token_store.create(user.id, TokenPurpose.EMAIL_VERIFICATION)
        self._email_client.send_email_verification(
            user.email, self._link("/auth/verify-email/verify", token)
        )
        self._security_logger.log(
            SecurityEvent.EMAIL_VERIFICATION_SENT,
            email=user.email,
            user_id=user.id,
            ip_address=ip_address,
        )

    def email_verification_verify(self, token: str, ip_address: str | None = None) -> UUID:
        """Mark the token owner's email verified. Returns their user id."""
        result = self._token_store.consume(token=token, purpose=TokenPurpose.EMAIL_VERIFICATION)
        if not result.consumed:
            self._security_logger.log(
                SecurityEvent.EMAIL_VERIFICATION_FAILED,
                ip_address=ip_address,
                details={"reason": "invalid_token"},
            )
            raise InvalidTokenError()

        self._auth_db.mark_email_verified(result.user_id)
        self._security_logger.log(
            SecurityEvent.EMAIL_VERIFIED,
            user_id=result.user_id,
            ip_address=ip_address,
        )
        return result.user_id

    # OAuth

    def begin_oauth_login(self, provider: str, redirect_url: str | None = None) -> OAuthAuthorization:
        return self._oauth.begin_authorization(provider, redirect_url)

    def complete_oauth_login(
        self,
        provider: str,
        code: str | None,
        state: str | None,
        stored_state: str | None,
        stored_code_verifier: str | None = None,
        stored_redirect_url: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> OAuthCallbackResult:
        result = self._oauth.complete_authorization(
            provider,
            code=code,
            state=state,
            stored_state=stored_state,
            stored_code_verifier=stored_code_verifier,
            stored_redirect_url=stored_redirect_url,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        if result.session is None:
            self._security_logger.log(
                SecurityEvent.OAUTH_LOGIN_FAILED,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"provider": provider, "reason": result.error},
            )
            return result

        if result.new_user:
            self._security_logger.log(
                SecurityEvent.USER_CREATED,
                email=result.user.email,
                user_id=result.user.id,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"method": provider},
            )
        self._security_logger.log(
            SecurityEvent.OAUTH_LOGIN_SUCCEEDED,
            email=result.user.email,
            user_id=result.user.id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"provider": provider},
        )
        return result

    # Sessions and profile

    def logout(self, session_id: str, user_id: UUID | None = None, ip_address: str | None = None) -> None:
        """Invalidate the current session. Safe to call with an unknown id."""
        self._session_manager.invalidate(session_id)
        self._security_logger.log(
            SecurityEvent.SESSION_REVOKED,
            user_id=user_id,
            ip_address=ip_address,
            details={"reason": "logout"},
        )

    def revoke_session(self, user_id: UUID, revoke_id: str, ip_address: str | None = None) -> None:
        """
        Raises:
            NotFoundError: No session with this revoke id for this user
        """
        if not self._session_manager.revoke_by_revoke_id(user_id, revoke_id):
            raise NotFoundError("Session not found")
        self._security_logger.log(
            SecurityEvent.SESSION_REVOKED,
            user_id=user_id,
            ip_address=ip_address,
            details={"reason": "revoked", "revoke_id": revoke_id},
        )

    def get_user_details(self, user_id: UUID, current_session_id: str | None = None) -> UserDetails:
        user = self._auth_db.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        sessions = [
            ActiveSessionSummary(
                display_id=f"***{s.id[-4:]}",
                revoke_id=s.revoke_id,
                expires_at=s.expires_at,
                ip_address=s.ip_address,
                device_name=get_device_name(s.user_agent_hash),
                is_current=s.id == current_session_id,
            )
            for s in self._session_manager.list_active_for_user(user_id)
        ]

        return UserDetails(
            id=user.id,
            email=user.email,
            email_verified=user.email_verified,
            metadata=user.metadata,
            joined_at=user.joined_at,
            updated_at=user.updated_at,
            oauth_accounts=self._auth_db.list_oauth_accounts(user_id),
            active_sessions=sessions,
        )

    def update_user_metadata(self, user_id: UUID, metadata: UserMetadata) -> User:
        """Merge the fields set on metadata into the stored document."""
        user = self._auth_db.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        current = user.metadata.model_dump() if user.metadata else {}
        merged = UserMetadata(**{**current, **metadata.model_dump(exclude_unset=True)})

        updated = self._auth_db.update_metadata(user_id, merged)
        self._security_logger.log(
            SecurityEvent.PROFILE_UPDATED,
            email=user.email,
            user_id=user_id,
            details={"fields": sorted(metadata.model_fields_set)},
        )
        return updated
