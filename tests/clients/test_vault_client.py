"""Tests for VaultClient - AppRole auth, scoped paths and the secret cache."""

from unittest.mock import MagicMock, patch

import pytest
from hvac.exceptions import Forbidden, InvalidPath

import clients.vault_client as vault_module
from clients.vault_client import VaultClient, VaultError, get_oauth_config


@pytest.fixture
def vault_env(monkeypatch):
    monkeypatch.setenv("VAULT_ADDR", "https://vault.example.com")
    monkeypatch.setenv("VAULT_ROLE_ID", "role")
    monkeypatch.setenv("VAULT_SECRET_ID", "secret")
    monkeypatch.delenv("VAULT_NAMESPACE", raising=False)


@pytest.fixture
def hvac_client(vault_env):
    """Patched hvac.Client that authenticates and serves secrets from a dict."""
    secrets = {
        "launch/database": {"url": "postgresql://db.example.com/launch"},
        "launch/oauth/github": {"client_id": "gh-id", "client_secret": "gh-secret"},
    }

    def read(path, raise_on_deleted_version):
        if path not in secrets:
            raise InvalidPath()
        return {"data": {"data": secrets[path]}}

    client = MagicMock()
    client.auth.approle.login.return_value = {"auth": {"client_token": "tok"}}
    client.is_authenticated.return_value = True
    client.secrets.kv.v2.read_secret_version.side_effect = read

    with patch("clients.vault_client.hvac.Client", return_value=client):
        yield client


@pytest.fixture
def fresh_singleton():
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()
    yield
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()


class TestInit:
    """Fail fast on missing configuration."""

    def test_missing_vault_addr(self, vault_env, monkeypatch):
        monkeypatch.delenv("VAULT_ADDR")

        with pytest.raises(ValueError, match="VAULT_ADDR"):
            VaultClient()

    def test_missing_approle_credentials(self, vault_env, monkeypatch):
        monkeypatch.delenv("VAULT_ROLE_ID")

        with pytest.raises(ValueError, match="VAULT_ROLE_ID"):
            VaultClient()

    def test_failed_login(self, hvac_client):
        hvac_client.auth.approle.login.side_effect = Exception("invalid role_id")

        with pytest.raises(VaultError, match="AppRole authentication failed"):
            VaultClient()

    def test_login_sets_token(self, hvac_client):
        client = VaultClient()

        hvac_client.auth.approle.login.assert_called_once_with(role_id="role", secret_id="secret")
        assert client.client.token == "tok"


class TestGetSecret:
    """Paths are scoped under launch/."""

    def test_returns_field(self, hvac_client):
        assert VaultClient().get_secret("database", "url") == "postgresql://db.example.com/launch"

    def test_missing_path(self, hvac_client):
        with pytest.raises(VaultError, match="launch/nope"):
            VaultClient().get_secret("nope", "url")

    def test_forbidden(self, hvac_client):
        hvac_client.secrets.kv.v2.read_secret_version.side_effect = Forbidden()

        with pytest.raises(VaultError, match="Access denied"):
            VaultClient().get_secret("database", "url")

    def test_missing_field(self, hvac_client):
        with pytest.raises(KeyError, match="Available: url"):
            VaultClient().get_secret("database", "password")


class TestConvenienceFunctions:
    def test_oauth_config_is_cached(self, hvac_client, fresh_singleton):
        assert get_oauth_config("github") == {"client_id": "gh-id", "client_secret": "gh-secret"}
        get_oauth_config("github")

        assert hvac_client.secrets.kv.v2.read_secret_version.call_count == 2

    def test_unconfigured_provider(self, hvac_client, fresh_singleton):
        with pytest.raises(VaultError):
            get_oauth_config("google")
