"""Security middleware for FastAPI - session resolution and auth dependencies."""

from fastapi import Depends
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from auth.config import AuthConfig
from auth.cookies import (
    SESSION_COOKIE,
    delete_session_cookie,
    response_sets_cookie,
    set_session_cookie,
)
from auth.exceptions import UnauthorizedError
from auth.request_info import get_client_ip
from auth.session import SessionManager
from auth.session_metadata import SessionMetadataUpdater
from auth.types import Session, SessionValidation, User


class AuthMiddleware(BaseHTTPMiddleware):
    """Middleware that resolves the session cookie into request.state.

    For every non-skipped request:
    1. Reads the 'session' cookie
    2. Validates it via SessionManager (on the thread pool)
    3. Sets request.state.user / request.state.session (None when absent)
    4. Schedules a detached metadata update if IP or user agent changed
    5. Refreshes the cookie with the current expiry, or deletes a stale one

    Never rejects a request itself; routes opt in with require_auth.
    """

    SKIP_PATHS = [
        "/health",
        "/docs",
        "/redoc",
        "/openapi.json",
    ]

    def __init__(
        self,
        app,
        session_manager: SessionManager,
        metadata_updater: SessionMetadataUpdater,
        config: AuthConfig,
    ):
        super().__init__(app)
        self._session_manager = session_manager
        self._metadata_updater = metadata_updater
        self._config = config

    def _is_skipped_path(self, path: str) -> bool:
        for skipped in self.SKIP_PATHS:
            if path == skipped or path.startswith(skipped + "/"):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        if self._is_skipped_path(request.url.path):
            return await call_next(request)

        session_id = request.cookies.get(SESSION_COOKIE)

        if session_id:
            validation = await run_in_threadpool(self._session_manager.validate, session_id)
        else:
            validation = SessionValidation()

        request.state.user = validation.user
        request.state.session = validation.session

        if validation.session is not None:
            self._metadata_updater.schedule(
                validation.session,
                get_client_ip(request),
                request.headers.get("user-agent"),
            )

        response = await call_next(request)

        # Login/logout handlers write their own cookie
        if response_sets_cookie(response, SESSION_COOKIE):
            return response

        if validation.session is not None:
            set_session_cookie(response, validation.session, self._config)
        elif session_id:
            delete_session_cookie(response, self._config)

        return response


async def require_auth(request: Request) -> None:
    """Dependency: reject requests without a valid session."""
    if getattr(request.state, "session", None) is None or getattr(request.state, "user", None) is None:
        raise UnauthorizedError("Unauthorized. Please login.")


async def current_user(request: Request, _: None = Depends(require_auth)) -> User:
    return request.state.user


async def current_session(request: Request, _: None = Depends(require_auth)) -> Session:
    return request.state.session


async def optional_user(request: Request) -> User | None:
    return getattr(request.state, "user", None)


async def optional_session(request: Request) -> Session | None:
    return getattr(request.state, "session", None)
