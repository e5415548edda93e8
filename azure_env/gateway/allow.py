"""Allow-list of message shapes permitted through the gateway."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from azure_env.messaging import MessageDefinition, PatternIndex, canonical, parse_pattern

logger = logging.getLogger(__name__)

Rule = Union[bool, PatternIndex[str]]


@dataclass(slots=True)
class AllowDecision:
    allowed: bool
    pattern: str | None = None
    params: Any = None


class AllowList:
    """Index of allowed canonical message shapes.

    Keys of ``allow`` are pattern strings (glob values permitted). Values are
    ``True`` for any parameters, or a list of parameter patterns that the full
    message must also match. An empty list allows any parameters.

    Lookups use the canonical shape of the definition the router selects, not
    the inbound message, so extra fields can not steer a message past a
    narrower rule.
    """

    def __init__(self, allow: Optional[Mapping[str, Any]], *, debug: bool = False) -> None:
        self.enabled = allow is not None
        self._debug = debug
        self._index: PatternIndex[Rule] = PatternIndex(gex=True)
        for pattern, params in (allow or {}).items():
            self._index.add(pattern, self._rule(params))
            if debug:
                logger.debug(
                    "gateway-allow-pattern",
                    extra={"msg_pattern": canonical(parse_pattern(pattern)), "params": params},
                )

    @staticmethod
    def _rule(params: Any) -> Rule:
        if params is True:
            return True
        if isinstance(params, (list, tuple)):
            if not params:
                return True
            index: PatternIndex[str] = PatternIndex(gex=True)
            for param_pattern in params:
                entry = index.add(param_pattern, "")
                entry.data = entry.canon
            return index
        return False

    def __len__(self) -> int:
        return len(self._index)

    def check(self, definition: MessageDefinition | None, msg: Mapping[str, Any]) -> AllowDecision:
        if definition is None:
            return AllowDecision(allowed=False)

        rule = self._index.find(definition.pattern, exact=True)
        if rule is True:
            return AllowDecision(allowed=True, pattern=definition.canon, params=True)
        if isinstance(rule, PatternIndex):
            matched = rule.find(msg)
            return AllowDecision(allowed=matched is not None, pattern=definition.canon, params=matched)
        return AllowDecision(allowed=False, pattern=definition.canon)


__all__ = ["AllowDecision", "AllowList"]
