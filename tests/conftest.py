"""Shared test fixtures for the auth and organizations test suite."""

from pathlib import Path
from unittest.mock import Mock

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from auth.config import AuthConfig
from auth.oauth import GitHubProvider, GoogleProvider, OAuthExchange
from auth.passwords import PasswordHasher
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger
from auth.service import AuthService
from auth.session import SessionManager
from auth.tokens import TokenStore
from clients.email_client import EmailGatewayClient
from fakes import FakeValkey, InMemoryAuthDatabase, InMemoryOrganizationDatabase
from organizations.service import OrganizationService


BASE_URL = "https://app.example.com"
TEST_PASSWORD = "correct-horse"


# =============================================================================
# CONFIG
# =============================================================================


@pytest.fixture
def config():
    """Config with the cheapest argon2 parameters so hashing stays fast."""
    return AuthConfig(
        app_base_url=BASE_URL,
        password_time_cost=1,
        password_memory_cost_kib=8,
        password_parallelism=1,
    )


# =============================================================================
# STORAGE FIXTURES
# =============================================================================


@pytest.fixture
def auth_db():
    return InMemoryAuthDatabase()


@pytest.fixture
def org_db(auth_db):
    return InMemoryOrganizationDatabase(auth_db)


@pytest.fixture
def valkey():
    return FakeValkey()


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def password_hasher(config):
    return PasswordHasher(config)


@pytest.fixture
def session_manager(auth_db, config):
    return SessionManager(auth_db, config)


@pytest.fixture
def token_store(auth_db, config):
    return TokenStore(auth_db, config)


@pytest.fixture
def rate_limiter(valkey, config):
    return RateLimiter(valkey, config)


@pytest.fixture
def email_client():
    """Mock email client - the only outbound call in the services."""
    return Mock(spec=EmailGatewayClient)


@pytest.fixture
def security_logger():
    return Mock(spec=SecurityLogger)


@pytest.fixture
def github_provider():
    return GitHubProvider(
        client_id="gh-client",
        client_secret="gh-secret",
        redirect_uri=f"{BASE_URL}/api/auth/login/github/callback",
    )


@pytest.fixture
def google_provider():
    return GoogleProvider(
        client_id="google-client",
        client_secret="google-secret",
        redirect_uri=f"{BASE_URL}/api/auth/login/google/callback",
    )


@pytest.fixture
def oauth(config, auth_db, session_manager, password_hasher, github_provider, google_provider):
    return OAuthExchange(
        config=config,
        auth_db=auth_db,
        session_manager=session_manager,
        password_hasher=password_hasher,
        providers=[github_provider, google_provider],
    )


@pytest.fixture
def auth_service(
    config,
    auth_db,
    session_manager,
    token_store,
    oauth,
    password_hasher,
    email_client,
    security_logger,
):
    return AuthService(
        config=config,
        auth_db=auth_db,
        session_manager=session_manager,
        token_store=token_store,
        oauth=oauth,
        password_hasher=password_hasher,
        email_client=email_client,
        security_logger=security_logger,
    )


@pytest.fixture
def org_service(config, org_db, auth_db, session_manager, email_client):
    return OrganizationService(
        config=config,
        org_db=org_db,
        auth_db=auth_db,
        session_manager=session_manager,
        email_client=email_client,
    )


# =============================================================================
# USER FIXTURES
# =============================================================================


@pytest.fixture
def make_user(auth_db, password_hasher):
    """Factory creating users with TEST_PASSWORD."""

    def _make(email: str = "user@example.com", email_verified: bool = False, metadata=None):
        return auth_db.create_user(
            email=email,
            password_hash=password_hasher.hash_password(TEST_PASSWORD),
            metadata=metadata,
            email_verified=email_verified,
        )

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


# =============================================================================
# APP FIXTURES
# =============================================================================


@pytest.fixture
def api_app(config, auth_service, org_service, session_manager, rate_limiter, token_store):
    """The real application wired to in-memory storage."""
    from auth.session_metadata import SessionMetadataUpdater
    from main import Services, create_app

    metadata_updater = SessionMetadataUpdater(session_manager)
    services = Services(
        auth_service=auth_service,
        org_service=org_service,
        session_manager=session_manager,
        metadata_updater=metadata_updater,
        rate_limiter=rate_limiter,
        token_store=token_store,
    )
    yield create_app(config, services)
    metadata_updater.shutdown()


@pytest.fixture
def api_client(api_app):
    from fastapi.testclient import TestClient

    return TestClient(api_app)


@pytest.fixture
def login(api_client):
    """Log api_client in through the real endpoint; the cookie stays in its jar."""

    def _login(email: str = "user@example.com", password: str = TEST_PASSWORD):
        response = api_client.post("/api/auth/login", json={"email": email, "password": password})
        assert response.status_code == 200, response.text
        return response

    return _login
