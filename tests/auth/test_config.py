"""Tests for auth/config.py - Auth configuration with validation."""

import pytest
from pydantic import ValidationError

from auth.config import AuthConfig


class TestAuthConfigDefaults:
    """Tests that AuthConfig has sensible defaults."""

    def test_session_defaults(self):
        config = AuthConfig()
        assert config.session_expires_in_days == 7
        assert config.session_renew_within_days == 3.5

    def test_one_time_token_defaults(self):
        config = AuthConfig()
        assert config.otp_expiry_seconds == 120
        assert config.magic_link_expiry_seconds == 120
        assert config.password_reset_expiry_minutes == 30
        assert config.email_verification_expiry_minutes == 60

    def test_development_by_default(self):
        config = AuthConfig()
        assert config.environment == "development"
        assert config.is_production is False


class TestAuthConfigValidation:
    """Tests that AuthConfig enforces validation bounds."""

    def test_renew_window_must_be_shorter_than_lifetime(self):
        with pytest.raises(ValidationError, match="session_expires_in_days"):
            AuthConfig(session_expires_in_days=3, session_renew_within_days=3)

    def test_fractional_days_allowed(self):
        config = AuthConfig(session_expires_in_days=0.5, session_renew_within_days=0.25)
        assert config.session_expires_in_days == 0.5

    def test_otp_expiry_min_bound(self):
        with pytest.raises(ValidationError):
            AuthConfig(otp_expiry_seconds=29)

    def test_unknown_environment_rejected(self):
        with pytest.raises(ValidationError):
            AuthConfig(environment="staging")

    def test_production_flag(self):
        assert AuthConfig(environment="production").is_production is True
