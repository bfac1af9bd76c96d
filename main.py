"""
Application entry point: wires clients, services and routers into one FastAPI app.

Run with `python main.py` or `uvicorn main:build_app --factory`.
"""

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Callable

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from api.errors import register_error_handlers
from api.middleware import RequestIDMiddleware
from auth.api import create_auth_router
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.oauth import GitHubProvider, GoogleProvider, OAuthExchange, OAuthProvider
from auth.passwords import PasswordHasher
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger
from auth.security_middleware import AuthMiddleware
from auth.service import AuthService
from auth.session import SessionManager
from auth.session_metadata import SessionMetadataUpdater
from auth.tokens import TokenStore
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import (
    VaultError,
    get_database_url,
    get_email_config,
    get_oauth_config,
    get_valkey_url,
)
from organizations.api import create_organizations_router
from organizations.database import OrganizationDatabase
from organizations.service import OrganizationService

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

OAUTH_PROVIDERS = {
    "github": GitHubProvider,
    "google": GoogleProvider,
}


def load_config() -> AuthConfig:
    """AuthConfig from environment variables; unset ones keep their defaults."""
    overrides = {
        "environment": os.getenv("ENVIRONMENT"),
        "app_base_url": os.getenv("APP_BASE_URL"),
        "app_name": os.getenv("APP_NAME"),
    }
    rate_limit = os.getenv("RATE_LIMIT_ENABLED")
    if rate_limit is not None:
        overrides["rate_limit_enabled"] = rate_limit.lower() in ("1", "true", "yes")

    return AuthConfig(**{k: v for k, v in overrides.items() if v is not None})


def load_oauth_providers(config: AuthConfig) -> list[OAuthProvider]:
    """Providers with credentials in Vault. A provider without them is skipped."""
    base = config.app_base_url.rstrip("/")
    providers = []

    for name, provider_class in OAUTH_PROVIDERS.items():
        try:
            credentials = get_oauth_config(name)
        except (VaultError, KeyError) as e:
            logger.warning(f"OAuth provider {name} disabled: {e}")
            continue

        providers.append(
            provider_class(
                client_id=credentials["client_id"],
                client_secret=credentials["client_secret"],
                redirect_uri=f"{base}{config.api_prefix}/auth/login/{name}/callback",
            )
        )

    return providers


@dataclass
class Services:
    """Everything the HTTP layer needs, already wired together."""

    auth_service: AuthService
    org_service: OrganizationService
    session_manager: SessionManager
    metadata_updater: SessionMetadataUpdater
    rate_limiter: RateLimiter
    token_store: TokenStore
    on_shutdown: list[Callable[[], None]] = field(default_factory=list)


def build_services(
    config: AuthConfig,
    postgres: PostgresClient,
    valkey: ValkeyClient,
    email_client: EmailGatewayClient,
    oauth_providers: list[OAuthProvider],
) -> Services:
    """Wire services on top of already-connected clients."""
    auth_db = AuthDatabase(postgres)
    org_db = OrganizationDatabase(postgres)
    password_hasher = PasswordHasher(config)
    session_manager = SessionManager(auth_db, config)
    token_store = TokenStore(auth_db, config)

    oauth = OAuthExchange(
        config=config,
        auth_db=auth_db,
        session_manager=session_manager,
        password_hasher=password_hasher,
        providers=oauth_providers,
    )

    auth_service = AuthService(
        config=config,
        auth_db=auth_db,
        session_manager=session_manager,
        token_store=token_store,
        oauth=oauth,
        password_hasher=password_hasher,
        email_client=email_client,
        security_logger=SecurityLogger(postgres),
    )

    org_service = OrganizationService(
        config=config,
        org_db=org_db,
        auth_db=auth_db,
        session_manager=session_manager,
        email_client=email_client,
    )

    return Services(
        auth_service=auth_service,
        org_service=org_service,
        session_manager=session_manager,
        metadata_updater=SessionMetadataUpdater(session_manager),
        rate_limiter=RateLimiter(valkey, config),
        token_store=token_store,
        on_shutdown=[valkey.close, postgres.close],
    )


def create_app(config: AuthConfig, services: Services) -> FastAPI:
    """Build the FastAPI application around wired services."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {config.app_name} ({config.environment})")
        services.token_store.purge_expired()

        yield

        logger.info(f"Shutting down {config.app_name}")
        services.metadata_updater.shutdown()
        for close in services.on_shutdown:
            close()

    app = FastAPI(title=config.app_name, lifespan=lifespan)

    # Starlette runs the last-added middleware first
    app.add_middleware(
        AuthMiddleware,
        session_manager=services.session_manager,
        metadata_updater=services.metadata_updater,
        config=config,
    )
    app.add_middleware(RequestIDMiddleware)

    register_error_handlers(app, config)

    app.include_router(
        create_auth_router(services.auth_service, services.rate_limiter, config),
        prefix=f"{config.api_prefix}/auth",
    )
    app.include_router(
        create_organizations_router(services.org_service),
        prefix=f"{config.api_prefix}/organizations",
    )

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


def build_app() -> FastAPI:
    """Connect to Postgres, Valkey and the email gateway using Vault secrets."""
    config = load_config()
    email_config = get_email_config()

    services = build_services(
        config=config,
        postgres=PostgresClient(get_database_url()),
        valkey=ValkeyClient(get_valkey_url()),
        email_client=EmailGatewayClient(
            gateway_url=email_config["gateway_url"],
            api_key=email_config["api_key"],
            hmac_secret=email_config["hmac_secret"],
        ),
        oauth_providers=load_oauth_providers(config),
    )
    return create_app(config, services)


if __name__ == "__main__":
    uvicorn.run(
        build_app(),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
