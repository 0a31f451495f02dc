import pytest

from hybrid_browser_agent.credentials import (
    AccountCredentials,
    CredentialResolver,
    InMemoryAccountStore,
)
from hybrid_browser_agent.errors import SecretUnavailableError


def _resolver(environ=None) -> CredentialResolver:
    store = InMemoryAccountStore(
        [
            AccountCredentials(
                id="acc-1",
                label="Primary",
                account_key="primary",
                username="alice",
                password="wonderland",
            )
        ]
    )
    return CredentialResolver(store, environ=environ or {})


def test_resolves_account_fields():
    resolver = _resolver()

    assert resolver.resolve_account_secret("acc-1", "username") == "alice"
    assert resolver.resolve_account_secret("acc-1", "password") == "wonderland"


def test_missing_account_is_reported():
    resolver = _resolver()

    with pytest.raises(SecretUnavailableError, match="No active test account"):
        resolver.resolve_account_secret(None, "username")
    with pytest.raises(SecretUnavailableError):
        resolver.resolve_account_secret("acc-2", "password")


def test_env_secret_lookup():
    resolver = _resolver({"API_TOKEN": "t0k3n"})

    assert resolver.resolve_env_secret("API_TOKEN") == "t0k3n"
    with pytest.raises(SecretUnavailableError, match="OTHER is not set"):
        resolver.resolve_env_secret("OTHER")


def test_legacy_env_keys_are_disabled():
    resolver = _resolver({"TEST_USER": "bob", "TEST_USER_PASSWORD": "pw"})

    for key in ("TEST_USER", "TEST_USER_PASSWORD"):
        with pytest.raises(SecretUnavailableError, match="Legacy TEST_USER"):
            resolver.resolve_env_secret(key)
