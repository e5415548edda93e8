"""Register the Key Vault and gateway messages on a router."""
from __future__ import annotations

import logging
from typing import Any, Mapping

from .config import Settings, get_settings
from .gateway import Gateway, HookRegistry, UnknownHookError, parse_json
from .messaging import ActionContext, MessageRouter
from .secrets import KeyVaultSecretStore, SecretStore

logger = logging.getLogger(__name__)

GET_SECRET = "role:azure,cmd:get-secret"
LIST_SECRETS = "role:azure,cmd:list-secrets"
ENV_VARS = "sys:env,hook:vars"
ADD_HOOK = "sys:gateway,add:hook"
GET_HOOKS = "sys:gateway,get:hooks"


class AzureEnvPlugin:
    """Owns the secret store and gateway and answers the plugin messages."""

    def __init__(self, router: MessageRouter, settings: Settings, store: SecretStore) -> None:
        self.router = router
        self.settings = settings
        self.store = store
        self.hooks = HookRegistry()
        self.gateway = Gateway(router, settings, self.hooks)

    def register(self) -> "AzureEnvPlugin":
        self.router.add(GET_SECRET, self.get_secret)
        self.router.add(LIST_SECRETS, self.list_secrets)
        self.router.add(ENV_VARS, self.env_vars)
        self.router.add(ADD_HOOK, self.add_hook)
        self.router.add(GET_HOOKS, self.get_hooks)
        return self

    @property
    def exports(self) -> dict[str, Any]:
        return {
            "prepare": self.gateway.prepare,
            "handler": self.gateway.handler,
            "parse_json": parse_json,
            "get_secret": self.store.get_secret,
            "get_secrets": self.store.get_secrets,
        }

    async def get_secret(self, msg: Mapping[str, Any], ctx: ActionContext) -> dict[str, Any]:
        name = msg.get("name")
        if not name:
            return {"ok": False, "why": "missing-secret-name"}

        value = await self.store.get_secret(str(name))
        if value is None:
            return {"ok": False, "why": "secret-not-found"}
        return {"ok": True, "value": value}

    async def list_secrets(self, msg: Mapping[str, Any], ctx: ActionContext) -> dict[str, Any]:
        secrets = await self.store.get_secrets()
        names = list(secrets)
        return {"ok": True, "count": len(names), "names": names}

    async def env_vars(self, msg: Mapping[str, Any], ctx: ActionContext) -> dict[str, Any]:
        secrets = await self.store.get_secrets()
        previous = await ctx.prior(msg) or {}
        # Key Vault values win over earlier stages.
        return {**previous, **secrets}

    async def add_hook(self, msg: Mapping[str, Any], ctx: ActionContext) -> dict[str, Any]:
        hook = msg.get("hook")
        action = msg.get("action")
        if action is None:
            return {"ok": False, "why": "no-action"}
        try:
            count = self.hooks.add(hook, action)
        except UnknownHookError:
            logger.warning("gateway-unknown-hook", extra={"hook": hook})
            return {"ok": False, "why": "unknown-hook", "hook": hook}
        return {"ok": True, "hook": hook, "count": count}

    async def get_hooks(self, msg: Mapping[str, Any], ctx: ActionContext) -> dict[str, Any]:
        hook = msg.get("hook")
        hooks = self.hooks.get(hook)
        return {"ok": True, "hook": hook, "count": len(hooks), "hooks": hooks}

    async def aclose(self) -> None:
        close = getattr(self.store, "aclose", None)
        if close is not None:
            await close()


def install(
    router: MessageRouter,
    settings: Settings | None = None,
    *,
    store: SecretStore | None = None,
) -> AzureEnvPlugin:
    """Create the plugin for ``router`` and register its messages.

    Raises :class:`~azure_env.errors.SecretStoreInitError` when a Key Vault URL
    is configured but the client cannot be built; callers treat that as fatal.
    """

    settings = settings or get_settings()
    if store is None:
        store = KeyVaultSecretStore.from_settings(settings.azure, debug=settings.debug.log)
    return AzureEnvPlugin(router, settings, store).register()


__all__ = [
    "ADD_HOOK",
    "AzureEnvPlugin",
    "ENV_VARS",
    "GET_HOOKS",
    "GET_SECRET",
    "LIST_SECRETS",
    "install",
]
