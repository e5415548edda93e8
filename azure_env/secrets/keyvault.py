"""Azure Key Vault backed secret store."""
from __future__ import annotations

import logging
from typing import Any, Callable

from azure.core.exceptions import ResourceNotFoundError
from azure.identity.aio import DefaultAzureCredential
from azure.keyvault.secrets.aio import SecretClient as AzureSecretClient

from azure_env.config import KeyVaultSettings
from azure_env.errors import SecretStoreInitError
from azure_env.observability.metrics import record_keyvault_fetch

from .base import SecretClient
from .cache import SecretCache, monotonic_ms

logger = logging.getLogger(__name__)


def build_secret_client(url: str) -> tuple[SecretClient, Any]:
    """Create an async ``SecretClient`` authenticated with ``DefaultAzureCredential``."""

    try:
        credential = DefaultAzureCredential()
        client = AzureSecretClient(vault_url=url, credential=credential)
    except Exception as exc:
        logger.error("azure-keyvault-init-error", extra={"error": str(exc), "key_vault_url": url})
        raise SecretStoreInitError(f"Unable to create Key Vault client for {url}") from exc
    return client, credential


class KeyVaultSecretStore:
    """Fetch secrets from Key Vault and cache them in memory.

    A store without a client is a valid, permanently degraded state:
    ``get_secret`` answers ``None`` and ``get_secrets`` answers ``{}``.
    """

    name = "azure-keyvault"

    def __init__(
        self,
        client: SecretClient | None,
        settings: KeyVaultSettings,
        *,
        credential: Any = None,
        clock: Callable[[], float] = monotonic_ms,
        debug: bool = False,
    ) -> None:
        self._client = client
        self._credential = credential
        self._settings = settings
        self._debug = debug
        self.cache = SecretCache(settings.cache_timeout, clock=clock)

    @classmethod
    def from_settings(cls, settings: KeyVaultSettings, *, debug: bool = False) -> "KeyVaultSecretStore":
        """Build a store for ``settings.url``; an empty URL yields a degraded store."""

        if not settings.url:
            logger.info("azure-keyvault-disabled", extra={"reason": "no-url"})
            return cls(None, settings, debug=debug)

        client, credential = build_secret_client(settings.url)
        if debug:
            logger.debug("azure-keyvault-init", extra={"key_vault_url": settings.url})
        return cls(client, settings, credential=credential, debug=debug)

    @property
    def available(self) -> bool:
        return self._client is not None

    async def get_secret(self, name: str) -> str | None:
        if self._client is None:
            return None

        if self._settings.cache_secrets:
            cached = self.cache.get(name)
            if cached is not None:
                record_keyvault_fetch("get", "cache")
                return cached

        try:
            secret = await self._client.get_secret(name)
        except ResourceNotFoundError:
            record_keyvault_fetch("get", "not-found")
            logger.info("azure-keyvault-secret-not-found", extra={"secret_name": name})
            return None
        except Exception as exc:
            record_keyvault_fetch("get", "error")
            logger.error(
                "azure-keyvault-get-secret-error",
                extra={"error": str(exc), "secret_name": name},
            )
            return None

        record_keyvault_fetch("get", "vault")
        if self._settings.cache_secrets and secret.value is not None:
            self.cache.put(name, secret.value)
        return secret.value

    async def get_secrets(self) -> dict[str, str]:
        if self._client is None:
            return {}

        now = self.cache.now()
        if self._settings.cache_secrets:
            cached = self.cache.snapshot()
            if cached is not None:
                record_keyvault_fetch("list", "cache")
                return cached

        secrets: dict[str, str] = {}
        try:
            async for properties in self._client.list_properties_of_secrets():
                secret = await self._client.get_secret(properties.name)
                secrets[properties.name] = secret.value
        except Exception as exc:
            record_keyvault_fetch("list", "error")
            logger.error("azure-keyvault-get-secrets-error", extra={"error": str(exc)})
            fallback = self._settings.fallback_secrets
            if fallback is not None:
                logger.warning("azure-keyvault-fallback-secrets", extra={"count": len(fallback)})
                return dict(fallback)
            return {}

        record_keyvault_fetch("list", "vault")
        if self._settings.cache_secrets:
            self.cache.replace(secrets, now=now)
        if self._debug:
            logger.debug("azure-keyvault-get-secrets", extra={"count": len(secrets)})
        return secrets

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()
        if self._credential is not None:
            await self._credential.close()


__all__ = ["KeyVaultSecretStore", "build_secret_client"]
