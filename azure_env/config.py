"""Environment configuration for the Key Vault gateway plugin."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

AllowValue = Union[bool, List[Union[str, Dict[str, Any]]]]


class TimeoutOptions(BaseModel):
    """Client supplied ``timeout$`` handling."""

    client: bool = Field(False, description="Allow clients to set a custom timeout")
    max: int = Field(
        -1, description="Ceiling for client timeouts in ms; non-positive uses the router default"
    )


class ErrorOptions(BaseModel):
    """Which exception attributes are exposed in gateway responses."""

    message: bool = False
    details: bool = False


class DebugOptions(BaseModel):
    """Debug switches for responses and logging."""

    response: bool = Field(False, description="Include stack traces and full meta in responses")
    log: bool = Field(False, description="Emit detailed debug log events")


class KeyVaultSettings(BaseModel):
    """Azure Key Vault connection and cache configuration."""

    url: str = Field("", description="Key Vault URL, e.g. https://name.vault.azure.net/")
    cache_secrets: bool = True
    cache_timeout: int = Field(300_000, description="Cache lifetime in milliseconds")
    fallback_secrets: Optional[Dict[str, str]] = Field(
        None,
        description="Mapping returned by get_secrets() when the vault fails; off by default",
        repr=False,
    )

    model_config = {"frozen": True}


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    allow: Optional[Dict[str, AllowValue]] = Field(
        None, description="Pattern strings mapped to true or a list of parameter patterns"
    )
    custom: Dict[str, Any] = Field(
        default_factory=lambda: {"safe": False},
        description="Base custom meta data for each request delegate",
    )
    fixed: Dict[str, Any] = Field(
        default_factory=dict, description="Fixed arguments for each request delegate"
    )
    timeout: TimeoutOptions = Field(default_factory=TimeoutOptions)
    error: ErrorOptions = Field(default_factory=ErrorOptions)
    debug: DebugOptions = Field(default_factory=DebugOptions)
    azure: KeyVaultSettings = Field(default_factory=KeyVaultSettings)
    service_name: str = Field("azure-env", description="Service identifier used for logging")

    model_config = SettingsConfigDict(
        env_prefix="AZURE_ENV_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid re-parsing environment variables."""

    return Settings()


__all__ = [
    "DebugOptions",
    "ErrorOptions",
    "KeyVaultSettings",
    "Settings",
    "TimeoutOptions",
    "get_settings",
]
