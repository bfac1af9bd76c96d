"""Cookie writers for the session and OAuth round-trip cookies."""

from starlette.responses import Response

from auth.config import AuthConfig
from auth.types import Session

SESSION_COOKIE = "session"
OAUTH_COOKIE_MAX_AGE = 30 * 24 * 60 * 60


def set_session_cookie(response: Response, session: Session, config: AuthConfig) -> None:
    """Write the session cookie with an absolute expiry matching the session row."""
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session.id,
        expires=session.expires_at,
        path="/",
        httponly=True,
        samesite="lax",
        secure=config.is_production,
    )


def delete_session_cookie(response: Response, config: AuthConfig) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE,
        path="/",
        httponly=True,
        samesite="lax",
        secure=config.is_production,
    )


def set_oauth_cookies(response: Response, cookies: dict[str, str], config: AuthConfig) -> None:
    """Write the short-lived state / verifier / redirect cookies for an OAuth login."""
    for name, value in cookies.items():
        response.set_cookie(
            key=name,
            value=value,
            max_age=OAUTH_COOKIE_MAX_AGE,
            path="/",
            httponly=True,
            samesite="lax",
            secure=config.is_production,
        )


def response_sets_cookie(response: Response, name: str) -> bool:
    """True if the handler already wrote a Set-Cookie header for name."""
    prefix = f"{name}=".encode("latin-1")
    return any(
        key == b"set-cookie" and value.startswith(prefix)
        for key, value in response.raw_headers
    )
