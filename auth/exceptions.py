"""Typed exceptions for auth and organization failures.

Each carries the HTTP status it maps to. Services raise them; the HTTP
boundary (api/errors.py) turns them into the JSON error envelope.
"""

from typing import Any


class AuthError(Exception):
    """Base class for authentication/authorization errors."""

    status_code = 500

    def __init__(self, message: str, cause: Any = None):
        self.message = message
        self.cause = cause
        super().__init__(message)


class BadRequestError(AuthError):
    """Malformed input, wrong credentials, or an unusable token."""

    status_code = 400


class InvalidTokenError(BadRequestError):
    """
    One-time token is invalid, expired, or already used.

    Deliberately never says which of the three.
    """

    def __init__(self, message: str = "Invalid or expired token.", cause: Any = None):
        super().__init__(message, cause)


class InvalidCredentialsError(BadRequestError):
    """
    Email/password pair did not match.

    Raised for both unknown email and wrong password so responses can't be
    used to enumerate accounts.
    """

    def __init__(self, message: str = "Incorrect email or password.", cause: Any = None):
        super().__init__(message, cause)


class UnauthorizedError(AuthError):
    """No valid session on a route that requires one."""

    status_code = 401


class ForbiddenError(AuthError):
    """Authenticated, but the user's role or membership doesn't allow this."""

    status_code = 403


class NotFoundError(AuthError):
    """
    No such user, organization, invitation, or session.

    Note: login flows never raise this for unknown emails.
    """

    status_code = 404


class ConflictError(AuthError):
    """Duplicate email, slug, membership, or pending invitation."""

    status_code = 409


class RateLimitedError(AuthError):
    """Too many attempts. Client should wait before retrying."""

    status_code = 429

    def __init__(self, retry_after_seconds: int, message: str | None = None):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            message or f"Rate limited. Retry after {retry_after_seconds} seconds."
        )


class InternalServerError(AuthError):
    """An invariant broke, e.g. a session insert that returned nothing."""

    status_code = 500
