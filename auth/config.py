"""Authentication configuration."""

from typing import Literal

from pydantic import BaseModel, Field, model_validator


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    Session durations are in days (fractions allowed), one-time token
    lifetimes in seconds or minutes depending on how short-lived they are.
    Construction fails if the session renewal window is not strictly
    shorter than the session lifetime.
    """

    # Session settings
    session_expires_in_days: float = Field(
        default=7,
        description="Session lifetime in days, counted from creation or last renewal",
        gt=0,
        le=365,
    )
    session_renew_within_days: float = Field(
        default=3.5,
        description="Extend the session when it expires within this many days",
        gt=0,
    )

    # One-time token lifetimes
    otp_expiry_seconds: int = Field(
        default=120,
        description="How long an emailed OTP code remains valid",
        ge=30,
        le=900,
    )
    magic_link_expiry_seconds: int = Field(
        default=120,
        description="How long a magic link remains valid",
        ge=30,
        le=3600,
    )
    password_reset_expiry_minutes: int = Field(
        default=30,
        description="How long a password reset link remains valid",
        ge=5,
        le=1440,
    )
    email_verification_expiry_minutes: int = Field(
        default=60,
        description="How long an email verification link remains valid",
        ge=5,
        le=10080,
    )

    # Password hashing (argon2id)
    password_time_cost: int = Field(default=2, ge=1)
    password_memory_cost_kib: int = Field(default=19456, ge=8)
    password_parallelism: int = Field(default=1, ge=1)

    # Organizations
    invitation_expiry_days: int = Field(
        default=7,
        description="How long an organization invitation stays pending",
        ge=1,
        le=90,
    )

    # Rate limiting
    rate_limit_enabled: bool = Field(
        default=True,
        description="Turn off to skip all auth rate limits (local development)",
    )

    # Application
    environment: Literal["development", "production"] = Field(
        default="development",
        description="Production adds Secure to cookies and hides error details",
    )
    app_base_url: str = Field(
        default="http://localhost:3000",
        description="Public base URL used for links in emails and redirects",
    )
    api_prefix: str = Field(
        default="/api",
        description="Mount point of the HTTP API, used when building email links",
    )
    app_name: str = Field(
        default="Launch",
        description="Application name for emails",
    )

    @model_validator(mode="after")
    def check_session_windows(self) -> "AuthConfig":
        """Renewal only makes sense inside the session lifetime."""
        if self.session_expires_in_days <= self.session_renew_within_days:
            raise ValueError(
                "session_expires_in_days must be greater than session_renew_within_days"
            )
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"
