"""Azure Key Vault secrets and an allow-listed gateway for a message router."""

from .config import Settings, get_settings
from .env import EnvResolver
from .errors import ActionError, AzureEnvError, GatewayParseError, SecretStoreInitError
from .messaging import MessageRouter
from .plugin import AzureEnvPlugin, install

__version__ = "0.1.0"

__all__ = [
    "ActionError",
    "AzureEnvError",
    "AzureEnvPlugin",
    "EnvResolver",
    "GatewayParseError",
    "MessageRouter",
    "SecretStoreInitError",
    "Settings",
    "get_settings",
    "install",
]
