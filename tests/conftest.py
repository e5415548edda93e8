"""Shared fixtures: an in-memory Key Vault client and a controllable clock."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator

import pytest
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError

from azure_env.config import KeyVaultSettings, Settings
from azure_env.messaging import MessageRouter
from azure_env.secrets import KeyVaultSecretStore


@dataclass
class FakeSecret:
    name: str
    value: str | None


@dataclass
class FakeSecretProperties:
    name: str


class FakeSecretClient:
    """Stands in for ``azure.keyvault.secrets.aio.SecretClient``."""

    def __init__(self, secrets: dict[str, str] | None = None) -> None:
        self.secrets = dict(secrets or {})
        self.get_calls: list[str] = []
        self.list_calls = 0
        self.fail_list = False
        self.fail_get: set[str] = set()
        self.closed = False

    async def get_secret(self, name: str, **kwargs: Any) -> FakeSecret:
        self.get_calls.append(name)
        if name in self.fail_get:
            raise HttpResponseError(message=f"vault unavailable for {name}")
        if name not in self.secrets:
            raise ResourceNotFoundError(message=f"Secret {name} not found")
        return FakeSecret(name, self.secrets[name])

    def list_properties_of_secrets(self, **kwargs: Any) -> AsyncIterator[FakeSecretProperties]:
        self.list_calls += 1
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[FakeSecretProperties]:
        if self.fail_list:
            raise HttpResponseError(message="listing failed")
        for name in list(self.secrets):
            yield FakeSecretProperties(name)

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def vault_client() -> FakeSecretClient:
    return FakeSecretClient({"k1": "v1", "k2": "v2"})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def keyvault_settings() -> KeyVaultSettings:
    return KeyVaultSettings(url="https://test-keyvault.vault.azure.net/", cache_timeout=1000)


@pytest.fixture
def store(
    vault_client: FakeSecretClient, keyvault_settings: KeyVaultSettings, clock: FakeClock
) -> KeyVaultSecretStore:
    return KeyVaultSecretStore(vault_client, keyvault_settings, clock=clock)


@pytest.fixture
def settings(keyvault_settings: KeyVaultSettings) -> Settings:
    return Settings(azure=keyvault_settings)


@pytest.fixture
def router() -> MessageRouter:
    return MessageRouter()
