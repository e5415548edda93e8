"""In-process message router with prior chaining and request delegates."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Mapping, MutableMapping, Optional

from azure_env.errors import ActionError, nid

from .patterns import PatternIndex, PatternLike, canonical, parse_pattern

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 22_000

Action = Callable[[dict[str, Any], "ActionContext"], Awaitable[Optional[Mapping[str, Any]]]]


def is_directive(key: str) -> bool:
    return key.endswith("$")


def clean(msg: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``msg`` without ``$`` suffixed directive keys."""

    return {key: value for key, value in msg.items() if not is_directive(key)}


def _now_ms() -> float:
    return time.time() * 1000


@dataclass(slots=True)
class MessageDefinition:
    """A registered action and the action it overrides, if any."""

    pattern: dict[str, str]
    action: Action
    prior: Optional["MessageDefinition"] = None

    @property
    def canon(self) -> str:
        return canonical(self.pattern)

    @property
    def name(self) -> str:
        return getattr(self.action, "__name__", "action")


@dataclass(slots=True)
class CallMeta:
    """Meta data describing one dispatched message."""

    id: str
    pattern: str | None
    timeout: int
    start: float
    end: float | None = None
    custom: dict[str, Any] = field(default_factory=dict)
    error: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "pattern": self.pattern,
            "timeout": self.timeout,
            "start": self.start,
            "end": self.end,
            "custom": dict(self.custom),
            "error": self.error,
        }


@dataclass(slots=True)
class Reply:
    error: BaseException | None
    out: Mapping[str, Any] | None
    meta: CallMeta


class ActionContext:
    """Handed to every action; gives access to the prior action and the delegate."""

    def __init__(self, delegate: "Delegate", definition: MessageDefinition, meta: CallMeta) -> None:
        self.delegate = delegate
        self.definition = definition
        self.meta = meta

    @property
    def custom(self) -> Mapping[str, Any]:
        return self.meta.custom

    async def prior(self, msg: Mapping[str, Any]) -> Mapping[str, Any] | None:
        """Invoke the action this one overrides, or return ``None``."""

        prior = self.definition.prior
        if prior is None:
            return None
        return await self.delegate._run(prior, clean(msg), self.meta)


class Delegate:
    """Request scoped view of a router.

    Fixed arguments are merged over every message the delegate sends and
    ``custom`` travels in the call meta. After :meth:`seal` both are read-only.
    """

    def __init__(
        self,
        router: "MessageRouter",
        fixed: Mapping[str, Any] | None = None,
        custom: Mapping[str, Any] | None = None,
    ) -> None:
        self.router = router
        self._fixed: MutableMapping[str, Any] | MappingProxyType = dict(fixed or {})
        self._custom: MutableMapping[str, Any] | MappingProxyType = dict(custom or {})
        self._sealed = False

    @property
    def fixed(self) -> MutableMapping[str, Any] | MappingProxyType:
        return self._fixed

    @property
    def custom(self) -> MutableMapping[str, Any] | MappingProxyType:
        return self._custom

    @property
    def sealed(self) -> bool:
        return self._sealed

    def seal(self) -> "Delegate":
        if not self._sealed:
            self._fixed = MappingProxyType(dict(self._fixed))
            self._custom = MappingProxyType(dict(self._custom))
            self._sealed = True
        return self

    async def _run(
        self, definition: MessageDefinition, msg: dict[str, Any], meta: CallMeta
    ) -> Mapping[str, Any] | None:
        out = await definition.action(msg, ActionContext(self, definition, meta))
        if out is not None and not isinstance(out, Mapping):
            raise ActionError(
                "invalid-result",
                f"Action {definition.name} for {definition.canon} returned {type(out).__name__}",
            )
        return out

    async def dispatch(self, msg: Mapping[str, Any]) -> Reply:
        """Send ``msg`` and capture the outcome without raising."""

        raw = {**msg, **self._fixed}
        timeout = int(raw.get("timeout$") or self.router.timeout)
        data = clean(raw)
        definition = self.router.find(data)
        meta = CallMeta(
            id=str(raw.get("id$") or nid()),
            pattern=definition.canon if definition else None,
            timeout=timeout,
            start=_now_ms(),
            custom=dict(self._custom),
        )

        error: BaseException | None = None
        out: Mapping[str, Any] | None = None
        if definition is None:
            logger.debug("act-not-found", extra={"msg_pattern": canonical(parse_pattern(data))})
            error = ActionError(
                "act-not-found",
                f"No matching action pattern found for {canonical(parse_pattern(data))}",
            )
        else:
            try:
                out = await asyncio.wait_for(self._run(definition, data, meta), timeout / 1000)
            except asyncio.TimeoutError:
                error = ActionError(
                    "action-timeout",
                    f"Action {definition.canon} timed out after {timeout}ms",
                    details={"timeout": timeout},
                )
            except Exception as exc:
                error = exc

        meta.end = _now_ms()
        meta.error = error is not None
        return Reply(error=error, out=out, meta=meta)

    async def act(self, msg: Mapping[str, Any]) -> Mapping[str, Any] | None:
        """Send ``msg`` and return its result, raising the action error if any."""

        reply = await self.dispatch(msg)
        if reply.error is not None:
            raise reply.error
        return reply.out


class MessageRouter:
    """Register actions by pattern and dispatch messages to the best match."""

    def __init__(self, *, timeout: int = DEFAULT_TIMEOUT_MS) -> None:
        self.timeout = timeout
        self._index: PatternIndex[MessageDefinition] = PatternIndex()
        self._root = Delegate(self)

    @property
    def root(self) -> Delegate:
        return self._root

    def add(self, pattern: PatternLike, action: Action) -> MessageDefinition:
        """Register ``action``; an identical pattern stacks over the previous action."""

        parsed = parse_pattern(pattern)
        existing = self._index.get(parsed)
        definition = MessageDefinition(parsed, action, existing.data if existing else None)
        self._index.add(parsed, definition)
        logger.debug("router-add", extra={"msg_pattern": definition.canon, "action": definition.name})
        return definition

    def find(self, msg: Mapping[str, Any]) -> MessageDefinition | None:
        return self._index.find(clean(msg))

    def has(self, pattern: PatternLike) -> bool:
        return self._index.get(pattern) is not None

    def patterns(self) -> list[str]:
        return sorted(entry.canon for entry in self._index)

    def delegate(
        self,
        fixed: Mapping[str, Any] | None = None,
        custom: Mapping[str, Any] | None = None,
    ) -> Delegate:
        return Delegate(self, fixed, custom)

    async def act(self, msg: PatternLike, **params: Any) -> Mapping[str, Any] | None:
        """Convenience wrapper: ``await router.act("role:azure,cmd:list-secrets")``."""

        return await self._root.act({**parse_pattern(msg), **params} if isinstance(msg, str) else {**msg, **params})

    async def dispatch(self, msg: Mapping[str, Any]) -> Reply:
        return await self._root.dispatch(msg)


__all__ = [
    "Action",
    "ActionContext",
    "CallMeta",
    "DEFAULT_TIMEOUT_MS",
    "Delegate",
    "MessageDefinition",
    "MessageRouter",
    "Reply",
    "clean",
    "is_directive",
]
