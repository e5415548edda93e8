"""Ordered hook registry for the gateway request lifecycle."""
from __future__ import annotations

import copy
import inspect
from typing import Any, Callable, Mapping, Union

from azure_env.errors import AzureEnvError

HOOK_KINDS = (
    # Modify the custom meta data carried by the request delegate.
    "custom",
    # Modify the fixed arguments applied to every message.
    "fixed",
    # Modify the request delegate itself.
    "delegate",
    # Run before dispatch; a truthy result replaces the action.
    "action",
    # Run after dispatch with the outcome.
    "result",
)

Hook = Union[Callable[..., Any], Mapping[str, Any]]


class UnknownHookError(AzureEnvError, KeyError):
    """Raised when a hook is registered under a kind the gateway does not run."""


def deep_merge(base: Mapping[str, Any], extra: Mapping[str, Any]) -> dict[str, Any]:
    """Return a new mapping with ``extra`` merged recursively over ``base``."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in extra.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


async def invoke(hook: Callable[..., Any], *args: Any) -> Any:
    """Call a plain or async hook and return its result."""

    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class HookRegistry:
    """Append-only lists of hooks keyed by kind, run in registration order."""

    def __init__(self) -> None:
        self._hooks: dict[str, list[Hook]] = {kind: [] for kind in HOOK_KINDS}

    def add(self, kind: str, hook: Hook) -> int:
        """Register ``hook`` and return the number of hooks of that kind."""

        if kind not in self._hooks:
            raise UnknownHookError(kind)
        hooks = self._hooks[kind]
        hooks.append(hook)
        return len(hooks)

    def get(self, kind: str) -> list[Hook]:
        """Return a copy of the hooks for ``kind``; unknown kinds have none."""

        return list(self._hooks.get(kind, ()))

    def count(self, kind: str) -> int:
        return len(self._hooks.get(kind, ()))

    async def build(
        self,
        kind: str,
        base: Mapping[str, Any],
        raw: Mapping[str, Any],
        ctx: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Fold ``custom`` or ``fixed`` hooks over a copy of ``base``.

        Mapping hooks are deep merged; callables receive the accumulator, the
        raw request and the transport context and may mutate the accumulator.
        """

        acc = deep_merge({}, base)
        for hook in self.get(kind):
            if isinstance(hook, Mapping):
                acc = deep_merge(acc, hook)
            else:
                await invoke(hook, acc, raw, ctx)
        return acc


__all__ = ["HOOK_KINDS", "Hook", "HookRegistry", "UnknownHookError", "deep_merge", "invoke"]
