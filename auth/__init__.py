"""Authentication and authorization modules."""

from auth.exceptions import (
    AuthError,
    BadRequestError,
    InvalidTokenError,
    InvalidCredentialsError,
    UnauthorizedError,
    ForbiddenError,
    NotFoundError,
    ConflictError,
    RateLimitedError,
    InternalServerError,
)
from auth.types import (
    User,
    UserMetadata,
    UserResponse,
    Session,
    SessionValidation,
    OAuthAccount,
    OneTimeToken,
    TokenPurpose,
    ConsumeResult,
    AuthenticatedUser,
)
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.passwords import PasswordHasher
from auth.tokens import TokenStore
from auth.session import SessionManager
from auth.session_metadata import SessionMetadataUpdater
from auth.oauth import (
    OAuthExchange,
    OAuthProvider,
    GitHubProvider,
    GoogleProvider,
    OAuthError,
    OAuthRequestError,
)
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.service import AuthService
from auth.security_middleware import AuthMiddleware, require_auth, current_user, current_session
from auth.api import create_auth_router
