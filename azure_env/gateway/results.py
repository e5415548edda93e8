"""Gateway result envelope and error descriptors."""
from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from typing import Any, Mapping

from azure_env.errors import nid
from azure_env.messaging import CallMeta


def nundef(values: Mapping[str, Any]) -> dict[str, Any]:
    """Drop ``None`` entries so absent fields are omitted, not blank."""

    return {key: value for key, value in values.items() if value is not None}


@dataclass(slots=True)
class GatewayResult:
    """Normalized outcome of one gateway request.

    ``out`` is the externalized action result, or an error descriptor when
    ``error`` is set. ``gateway`` holds the ``gateway$`` directives the action
    returned for the transport.
    """

    error: bool
    out: dict[str, Any]
    meta: dict[str, Any] | None = None
    gateway: dict[str, Any] | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.error, "out": self.out}
        if self.meta is not None:
            payload["meta"] = self.meta
        if self.gateway is not None:
            payload["gateway$"] = self.gateway
        return payload


def externalize_reply(out: Mapping[str, Any] | None, meta: CallMeta, *, verbose: bool) -> dict[str, Any]:
    """Copy an action result for the transport and attach ``meta$``."""

    reply = dict(out or {})
    reply["meta$"] = meta.to_dict() if verbose else {"id": meta.id}
    return reply


def error_descriptor(
    err: BaseException,
    meta: Mapping[str, Any],
    *,
    include_message: bool,
    include_details: bool,
    include_stack: bool,
) -> dict[str, Any]:
    descriptor = {
        "meta$": meta,
        "name": type(err).__name__,
        "id": getattr(err, "id", None) or nid(),
        "code": getattr(err, "code", None),
        "message": (getattr(err, "message", None) or str(err)) if include_message else None,
        "details": getattr(err, "details", None) if include_details else None,
        "stack": "".join(traceback.format_exception(err)) if include_stack else None,
    }
    return nundef(descriptor)


def not_allowed_result(
    msg_id: Any, *, pattern: str | None = None, allowed: bool | None = None
) -> GatewayResult:
    """Build the stable rejection returned for messages outside the allow-list."""

    errdesc = nundef(
        {
            "name": "Error",
            "id": nid(),
            "code": "not-allowed",
            "message": "Message not allowed",
            "pattern": pattern,
            "allowed": allowed,
        }
    )
    return GatewayResult(
        error=True,
        out={
            **errdesc,
            "meta$": nundef({"id": msg_id, "error": True}),
            # Kept for clients of the older transport format.
            "error$": dict(errdesc),
        },
    )


__all__ = [
    "GatewayResult",
    "error_descriptor",
    "externalize_reply",
    "not_allowed_result",
    "nundef",
]
