"""Exception types shared by the router, the secret store and the gateway."""
from __future__ import annotations

import secrets
import string
from typing import Any

_NID_ALPHABET = string.ascii_lowercase + string.digits


def nid(length: int = 9) -> str:
    """Return a short random identifier used to correlate errors with logs."""

    return "".join(secrets.choice(_NID_ALPHABET) for _ in range(length))


class AzureEnvError(Exception):
    """Base class for every error raised by this package."""


class ActionError(AzureEnvError):
    """Raised when a message action fails or cannot be dispatched."""

    def __init__(
        self,
        code: str,
        message: str | None = None,
        *,
        details: Any = None,
        id: str | None = None,
    ) -> None:
        super().__init__(message or code)
        self.code = code
        self.message = message or code
        self.details = details
        self.id = id


class SecretStoreInitError(AzureEnvError):
    """Raised when the Key Vault client cannot be constructed."""


class GatewayParseError(AzureEnvError, ValueError):
    """Returned by ``parse_json`` when an inbound body is not valid JSON."""

    def __init__(self, message: str, raw: str) -> None:
        super().__init__(message)
        self.handler = {"error$": message, "input$": raw}


__all__ = [
    "ActionError",
    "AzureEnvError",
    "GatewayParseError",
    "SecretStoreInitError",
    "nid",
]
