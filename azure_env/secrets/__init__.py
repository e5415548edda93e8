"""Secret lookup backed by Azure Key Vault with an in-memory cache."""
from __future__ import annotations

from .base import SecretClient, SecretStore
from .cache import SecretCache
from .keyvault import KeyVaultSecretStore, build_secret_client

__all__ = [
    "KeyVaultSecretStore",
    "SecretCache",
    "SecretClient",
    "SecretStore",
    "build_secret_client",
]
