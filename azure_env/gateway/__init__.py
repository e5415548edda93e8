"""Gateway policy layer: allow-list, request delegates, hooks and results."""

from .allow import AllowDecision, AllowList
from .handler import Gateway, parse_json
from .hooks import HOOK_KINDS, HookRegistry, UnknownHookError, deep_merge
from .results import GatewayResult

__all__ = [
    "AllowDecision",
    "AllowList",
    "Gateway",
    "GatewayResult",
    "HOOK_KINDS",
    "HookRegistry",
    "UnknownHookError",
    "deep_merge",
    "parse_json",
]
