"""Pydantic models for auth domain."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class TokenPurpose(str, Enum):
    """What a one-time token may be redeemed for."""

    OTP = "otp"
    MAGIC_LINK = "magic_link"
    RESET_PASSWORD = "reset_password"
    EMAIL_VERIFICATION = "email_verification"


class UserMetadata(BaseModel):
    """Profile data kept in the users.metadata JSON column.

    Strict: unknown keys in stored JSON are a data error, not something to
    pass along.
    """

    model_config = ConfigDict(extra="forbid")

    username: str | None = None
    name: str | None = None
    # Public avatar url from an OAuth provider
    avatar_url: str | None = None
    # Object id in our own bucket; shown in preference to avatar_url
    avatar_object_id: str | None = None


class User(BaseModel):
    """A registered user of the system."""

    id: UUID
    email: EmailStr
    email_verified: bool = False
    password_hash: str = Field(..., repr=False)
    metadata: UserMetadata | None = None
    joined_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserResponse(BaseModel):
    """User as returned to clients. Never carries the password hash."""

    id: UUID
    email: EmailStr
    email_verified: bool
    metadata: UserMetadata | None
    joined_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            email_verified=user.email_verified,
            metadata=user.metadata,
            joined_at=user.joined_at,
            updated_at=user.updated_at,
        )


class Session(BaseModel):
    """A server-side session, referenced by the `session` cookie."""

    id: str = Field(..., description="Session token. Only ever sent in the http-only cookie")
    revoke_id: str = Field(..., description="Safe-to-share id used only for revoking")
    user_id: UUID
    expires_at: datetime
    ip_address: str | None = None
    user_agent_hash: str | None = None
    active_organization_id: UUID | None = None


class SessionResponse(BaseModel):
    """Session as returned to clients. The session id stays in the cookie."""

    revoke_id: str
    expires_at: datetime
    active_organization_id: UUID | None

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            revoke_id=session.revoke_id,
            expires_at=session.expires_at,
            active_organization_id=session.active_organization_id,
        )


class OAuthAccount(BaseModel):
    """Link between a provider identity and a local user."""

    provider_id: str
    provider_user_id: str
    user_id: UUID


class OneTimeToken(BaseModel):
    """Single-use secret for OTP, magic link, reset and verification flows."""

    token: str
    code: str | None = None
    expires_at: datetime
    user_id: UUID
    purpose: TokenPurpose


@dataclass
class ConsumeResult:
    """Outcome of redeeming a one-time token."""

    consumed: bool
    user_id: UUID | None = None


@dataclass
class SessionValidation:
    """Outcome of validating a session id. Both None means "no session"."""

    session: Session | None = None
    user: User | None = None
    renewed: bool = False


class AuthenticatedUser(BaseModel):
    """User info returned after successful authentication."""

    user: User
    session: Session


class ActiveSessionSummary(BaseModel):
    """One row of the profile's active-session list."""

    display_id: str
    revoke_id: str
    expires_at: datetime
    ip_address: str | None
    device_name: str
    is_current: bool


class UserDetails(BaseModel):
    """Profile view: the user plus linked accounts and live sessions."""

    id: UUID
    email: EmailStr
    email_verified: bool
    metadata: UserMetadata | None
    joined_at: datetime
    updated_at: datetime
    oauth_accounts: list[OAuthAccount]
    active_sessions: list[ActiveSessionSummary]


# Request bodies


class EmailPasswordRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    metadata: UserMetadata | None = None


class EmailRequest(BaseModel):
    email: EmailStr


class OTPVerifyRequest(BaseModel):
    user_id: UUID = Field(..., alias="userId")
    code: str

    model_config = ConfigDict(populate_by_name=True)


class ForgotPasswordVerifyRequest(BaseModel):
    token: str
    new_password: str = Field(..., alias="newPassword", min_length=6, max_length=255)

    model_config = ConfigDict(populate_by_name=True)


class RevokeSessionRequest(BaseModel):
    revoke_id: str = Field(..., alias="revokeId")

    model_config = ConfigDict(populate_by_name=True)
