"""
OAuth 2.0 authorization-code login for GitHub and Google.

Google uses PKCE (S256). State, code verifier and post-login redirect ride
in short-lived http-only cookies between the authorize redirect and the
callback. The callback never raises: every failure becomes a redirect that
carries an `error` query parameter.
"""

import base64
import hashlib
import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

import requests

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.exceptions import NotFoundError
from auth.passwords import PasswordHasher
from auth.request_info import get_user_agent_hash
from auth.session import SessionManager
from auth.types import Session, User, UserMetadata

logger = logging.getLogger(__name__)


class OAuthError(Exception):
    """Provider call failed (network, bad response, missing data)."""


class OAuthRequestError(OAuthError):
    """Provider rejected the authorization code or verifier."""


@dataclass
class OAuthProfile:
    """The parts of a provider profile we keep."""

    provider_user_id: str
    email: str | None
    username: str | None = None
    name: str | None = None
    avatar_url: str | None = None


@dataclass
class OAuthAuthorization:
    """Where to send the browser, and the cookies to set on the way."""

    authorization_url: str
    cookies: dict[str, str] = field(default_factory=dict)


@dataclass
class OAuthCallbackResult:
    """Outcome of an OAuth callback. error is set iff session is None."""

    redirect_url: str
    user: User | None = None
    session: Session | None = None
    error: str | None = None
    new_user: bool = False


def generate_state() -> str:
    return secrets.token_urlsafe(32)


def generate_code_verifier() -> str:
    """43-character verifier from the unreserved set (RFC 7636)."""
    return secrets.token_urlsafe(32)


def code_challenge_s256(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def safe_redirect_url(base_url: str, target: str | None, default: str = "/") -> str:
    """
    Absolute URL for a post-login redirect.

    Relative targets resolve against base_url. Anything that lands on
    another host (or isn't http/https) becomes the app root.
    """
    base = base_url.rstrip("/") + "/"
    try:
        resolved = urljoin(base, target or default)
        parts = urlsplit(resolved)
    except ValueError:
        logger.warning(f"Rejected malformed redirect target: {target}")
        return base

    if parts.scheme not in ("http", "https") or parts.netloc != urlsplit(base).netloc:
        logger.warning(f"Rejected off-site redirect target: {target}")
        return base
    return resolved


def append_query_param(url: str, key: str, value: str) -> str:
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.append((key, value))
    return urlunsplit(parts._replace(query=urlencode(query)))


class OAuthProvider(ABC):
    """Authorization-code flow against one provider."""

    name = ""
    label = ""
    authorize_url = ""
    token_url = ""
    scopes: tuple[str, ...] = ()
    uses_pkce = False

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str, timeout: int = 10):
        if not client_id:
            raise ValueError("client_id is required")
        if not client_secret:
            raise ValueError("client_secret is required")

        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout

    def extra_authorize_params(self) -> dict[str, str]:
        return {}

    def authorization_url(self, state: str, code_verifier: str | None = None) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "state": state,
            "scope": " ".join(self.scopes),
        }
        if self.uses_pkce:
            if not code_verifier:
                raise ValueError(f"{self.label} requires a PKCE code verifier")
            params["code_challenge"] = code_challenge_s256(code_verifier)
            params["code_challenge_method"] = "S256"
        params.update(self.extra_authorize_params())
        return f"{self.authorize_url}?{urlencode(params)}"

    def exchange_code(self, code: str, code_verifier: str | None = None) -> str:
        """
        Trade the authorization code for an access token.

        Raises:
            OAuthRequestError: Provider refused the code
            OAuthError: Network failure or unreadable response
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self.uses_pkce:
            data["code_verifier"] = code_verifier

        try:
            response = requests.post(
                self.token_url,
                data=data,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise OAuthError(f"{self.label} token request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise OAuthError(f"{self.label} token endpoint returned invalid JSON") from e

        # GitHub reports bad codes with a 200 and an "error" field
        if response.status_code >= 400 or "error" in payload or "access_token" not in payload:
            reason = payload.get("error_description") or payload.get("error") or response.status_code
            raise OAuthRequestError(f"{self.label} rejected authorization code: {reason}")

        return payload["access_token"]

    def _get_json(self, url: str, access_token: str) -> Any:
        try:
            response = requests.get(
                url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise OAuthError(f"{self.label} request to {url} failed: {e}") from e

        if response.status_code != 200:
            raise OAuthError(f"{self.label} request to {url} returned {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise OAuthError(f"{self.label} returned invalid JSON from {url}") from e

    @abstractmethod
    def fetch_profile(self, access_token: str) -> OAuthProfile:
        """Profile for the account that granted access_token."""


class GitHubProvider(OAuthProvider):
    name = "github"
    label = "GitHub"
    authorize_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    user_url = "https://api.github.com/user"
    emails_url = "https://api.github.com/user/emails"
    scopes = ("user:email", "read:user")

    def fetch_profile(self, access_token: str) -> OAuthProfile:
        """Profile email, or the primary verified address when the profile hides it."""
        user = self._get_json(self.user_url, access_token)

        email = user.get("email")
        if not email:
            emails = self._get_json(self.emails_url, access_token)
            email = next(
                (e["email"] for e in emails if e.get("primary") and e.get("verified")),
                None,
            ) or next((e["email"] for e in emails if e.get("verified")), None)

        return OAuthProfile(
            provider_user_id=str(user["id"]),
            email=email,
            username=user.get("login"),
            name=user.get("name"),
            avatar_url=user.get("avatar_url"),
        )


class GoogleProvider(OAuthProvider):
    name = "google"
    label = "Google"
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    userinfo_url = "https://openidconnect.googleapis.com/v1/userinfo"
    scopes = ("openid", "profile", "email")
    uses_pkce = True

    def extra_authorize_params(self) -> dict[str, str]:
        return {"prompt": "select_account"}

    def fetch_profile(self, access_token: str) -> OAuthProfile:
        user = self._get_json(self.userinfo_url, access_token)
        return OAuthProfile(
            provider_user_id=str(user["sub"]),
            email=user.get("email"),
            name=user.get("name"),
            avatar_url=user.get("picture"),
        )


class OAuthExchange:
    """Drive OAuth logins: authorize redirect, callback, identity resolution."""

    DEFAULT_REDIRECT_PATH = "/"

    def __init__(
        self,
        config: AuthConfig,
        auth_db: AuthDatabase,
        session_manager: SessionManager,
        password_hasher: PasswordHasher,
        providers: list[OAuthProvider],
    ):
        self._config = config
        self._auth_db = auth_db
        self._session_manager = session_manager
        self._password_hasher = password_hasher
        self._providers = {p.name: p for p in providers}

    @property
    def provider_names(self) -> list[str]:
        return list(self._providers)

    def safe_redirect_url(self, target: str | None) -> str:
        return safe_redirect_url(self._config.app_base_url, target, self.DEFAULT_REDIRECT_PATH)

    def begin_authorization(self, provider: str, redirect_url: str | None = None) -> OAuthAuthorization:
        """
        Build the provider authorize URL and the cookies that must survive to the callback.

        Raises:
            NotFoundError: Unknown or unconfigured provider
        """
        prov = self._providers.get(provider)
        if prov is None:
            raise NotFoundError(f"Unknown OAuth provider: {provider}")

        state = generate_state()
        cookies = {f"{prov.name}_oauth_state": state}

        code_verifier = None
        if prov.uses_pkce:
            code_verifier = generate_code_verifier()
            cookies[f"{prov.name}_oauth_codeverifier"] = code_verifier

        cookies[f"{prov.name}_oauth_redirect_url"] = redirect_url or self.DEFAULT_REDIRECT_PATH

        return OAuthAuthorization(
            authorization_url=prov.authorization_url(state, code_verifier),
            cookies=cookies,
        )

    def complete_authorization(
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
        """Finish the login. Never raises."""
        redirect_url = self.safe_redirect_url(stored_redirect_url)

        def failed(message: str) -> OAuthCallbackResult:
            return OAuthCallbackResult(
                redirect_url=append_query_param(redirect_url, "error", message),
                error=message,
            )

        prov = self._providers.get(provider)
        if prov is None:
            return failed(f"Unknown OAuth provider: {provider}")

        if (
            not code
            or not state
            or not stored_state
            or (prov.uses_pkce and not stored_code_verifier)
            or not secrets.compare_digest(state.encode(), stored_state.encode())
        ):
            return failed(f"No {prov.label} OAuth State cookie found. Try logging in again.")

        try:
            access_token = prov.exchange_code(code, stored_code_verifier)
            profile = prov.fetch_profile(access_token)
            if not profile.email:
                return failed(f"No verified email found on your {prov.label} account.")

            user, created = self._resolve_user(prov.name, profile)
            session = self._session_manager.create(
                user.id,
                ip_address=ip_address,
                user_agent_hash=get_user_agent_hash(user_agent),
            )
        except OAuthRequestError as e:
            logger.warning(f"{prov.label} OAuth code rejected: {e}")
            return failed(f"Invalid {prov.label} OAuth Code.")
        except Exception as e:
            logger.exception(f"{prov.label} OAuth callback failed: {e}")
            return failed(f"Unknown error during authentication with {prov.label}.")

        return OAuthCallbackResult(
            redirect_url=redirect_url,
            user=user,
            session=session,
            new_user=created,
        )

    def _resolve_user(self, provider: str, profile: OAuthProfile) -> tuple[User, bool]:
        """
        Linked account -> its user; known email -> link; otherwise create.

        Returns:
            Tuple of (user, was_created)
        """
        account = self._auth_db.get_oauth_account(provider, profile.provider_user_id)
        if account:
            user = self._auth_db.get_user_by_id(account.user_id)
            if user is None:
                raise OAuthError(f"OAuth account {provider}:{profile.provider_user_id} has no user")
            return user, False

        existing = self._auth_db.get_user_by_email(profile.email)
        if existing:
            self._auth_db.link_oauth_account(provider, profile.provider_user_id, existing.id)
            logger.info(f"Linked {provider} account to existing user {existing.id}")
            return existing, False

        user = self._auth_db.create_user_from_oauth(
            provider_id=provider,
            provider_user_id=profile.provider_user_id,
            email=profile.email,
            password_hash=self._password_hasher.random_password_hash(),
            metadata=UserMetadata(
                username=profile.username,
                name=profile.name,
                avatar_url=profile.avatar_url,
            ),
        )
        logger.info(f"Created user {user.id} from {provider} login")
        return user, True
