"""Test accounts and secret resolution for credential-typing actions."""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Iterable, Optional

from pydantic import BaseModel

from .errors import SecretUnavailableError

LOGGER = logging.getLogger(__name__)

LEGACY_SECRET_KEYS = frozenset({"TEST_USER", "TEST_USER_PASSWORD"})


class AccountCredentials(BaseModel):
    """A stored test account the agent may log in with."""

    id: str
    label: str
    account_key: str
    username: str
    password: str


class AccountStore(ABC):
    """Lookup of test accounts."""

    @abstractmethod
    def get(self, account_id: str) -> Optional[AccountCredentials]:
        """Return the account with ``account_id`` if it exists."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored accounts."""


class InMemoryAccountStore(AccountStore):
    """Dictionary-backed account store."""

    def __init__(self, accounts: Iterable[AccountCredentials] = ()) -> None:
        self._accounts: dict[str, AccountCredentials] = {}
        for account in accounts:
            self.add(account)

    def add(self, account: AccountCredentials) -> None:
        self._accounts[account.id] = account

    def get(self, account_id: str) -> Optional[AccountCredentials]:
        return self._accounts.get(account_id)

    def count(self) -> int:
        return len(self._accounts)


class CredentialResolver:
    """Resolve secret values without exposing them to the reasoning model."""

    def __init__(
        self,
        accounts: Optional[AccountStore] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._accounts = accounts or InMemoryAccountStore()
        self._environ = environ if environ is not None else os.environ

    @property
    def accounts(self) -> AccountStore:
        return self._accounts

    def get_account(self, account_id: Optional[str]) -> Optional[AccountCredentials]:
        if not account_id:
            return None
        return self._accounts.get(account_id)

    def resolve_env_secret(self, key: str) -> str:
        if key in LEGACY_SECRET_KEYS:
            raise SecretUnavailableError(
                "Legacy TEST_USER environment keys are disabled. "
                "Use type_test_account_secret with the selected test account."
            )
        value = self._environ.get(key)
        if not value:
            raise SecretUnavailableError(f"Environment variable {key} is not set.")
        return value

    def resolve_account_secret(self, account_id: Optional[str], field: str) -> str:
        account = self.get_account(account_id)
        if account is None:
            raise SecretUnavailableError("No active test account selected for this session.")
        if field == "username":
            return account.username
        if field == "password":
            return account.password
        raise SecretUnavailableError(f"Unknown test account field: {field}")
