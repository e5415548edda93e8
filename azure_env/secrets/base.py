"""Common types for the Key Vault secret store."""
from __future__ import annotations

from typing import Any, AsyncIterator, Protocol


class SecretProperties(Protocol):
    name: str


class VaultSecret(Protocol):
    name: str
    value: str | None


class SecretClient(Protocol):
    """Subset of ``azure.keyvault.secrets.aio.SecretClient`` used by the store."""

    async def get_secret(self, name: str, **kwargs: Any) -> VaultSecret:
        """Return the latest version of ``name``.

        Raises ``azure.core.exceptions.ResourceNotFoundError`` when the secret
        does not exist.
        """

    def list_properties_of_secrets(self, **kwargs: Any) -> AsyncIterator[SecretProperties]:
        """Iterate over the properties of every secret; values are not included."""

    async def close(self) -> None:
        ...


class SecretStore(Protocol):
    """Interface used by the plugin to look up secrets."""

    async def get_secret(self, name: str) -> str | None:
        """Return the value of ``name`` or ``None`` when it cannot be resolved."""

    async def get_secrets(self) -> dict[str, str]:
        """Return every secret as a ``{name: value}`` mapping; never raises."""


__all__ = ["SecretClient", "SecretProperties", "SecretStore", "VaultSecret"]
