"""Submit external JSON requests to the router under the gateway policy."""
from __future__ import annotations

import json
import logging
import math
from typing import Any, Mapping

from azure_env.config import Settings
from azure_env.errors import GatewayParseError
from azure_env.messaging import Delegate, MessageRouter, Reply, clean
from azure_env.observability.logging import request_context
from azure_env.observability.metrics import record_gateway_outcome

from .allow import AllowList
from .hooks import HookRegistry, invoke
from .results import GatewayResult, error_descriptor, externalize_reply, not_allowed_result

logger = logging.getLogger(__name__)


def parse_json(data: Any) -> Any:
    """Decode an inbound body; invalid JSON is returned as a ``GatewayParseError``."""

    if data is None:
        return {}
    if isinstance(data, (bytes, bytearray)):
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            return GatewayParseError(str(exc), data.decode("utf-8", errors="replace"))
    else:
        text = str(data)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        return GatewayParseError(str(exc), text)


class Gateway:
    """Allow-list check, per-request delegate, hooks and result normalization."""

    def __init__(
        self,
        router: MessageRouter,
        settings: Settings,
        hooks: HookRegistry | None = None,
    ) -> None:
        self.router = router
        self.settings = settings
        self.hooks = hooks or HookRegistry()
        self.allow = AllowList(settings.allow, debug=settings.debug.log)

    @property
    def _debug_log(self) -> bool:
        return self.settings.debug.log

    async def prepare(self, raw: Mapping[str, Any], ctx: Mapping[str, Any] | None = None) -> Delegate:
        """Build a sealed delegate for one request from the custom and fixed hooks."""

        ctx = ctx or {}
        custom = await self.hooks.build("custom", self.settings.custom, raw, ctx)
        fixed = await self.hooks.build("fixed", self.settings.fixed, raw, ctx)
        if self._debug_log:
            logger.debug("gateway-delegate-params", extra={"fixed": fixed, "custom": custom})

        # A new delegate per request keeps fixed and custom data isolated.
        delegate = self.router.delegate(fixed, custom)
        for hook in self.hooks.get("delegate"):
            await invoke(hook, delegate, raw, ctx)
        return delegate.seal()

    def _client_timeout(self, raw: Mapping[str, Any]) -> int | None:
        options = self.settings.timeout
        if not options.client or raw.get("timeout$") is None:
            return None
        try:
            value = float(raw["timeout$"])
        except (TypeError, ValueError):
            return None
        if not math.isfinite(value):
            return None
        client_timeout = int(value)
        max_timeout = options.max if options.max > 0 else self.router.timeout
        if 0 < client_timeout <= max_timeout:
            return client_timeout
        return None

    async def handler(self, raw: Mapping[str, Any], ctx: Mapping[str, Any] | None = None) -> Any:
        """Handle one inbound request.

        Returns a :class:`GatewayResult`, or the verbatim output of the first
        ``action`` hook that produced one.
        """

        ctx = ctx or {}
        with request_context():
            if self._debug_log:
                logger.debug("gateway-handler-json", extra={"json": dict(raw)})

            msg = clean(raw)
            if raw.get("id$") is not None:
                msg["id$"] = raw["id$"]
            timeout = self._client_timeout(raw)
            if timeout is not None:
                msg["timeout$"] = timeout

            if self.allow.enabled:
                definition = self.router.find(msg)
                if definition is None:
                    logger.debug("msg-not-found", extra={"msg_keys": sorted(msg)})
                decision = self.allow.check(definition, msg)
                if not decision.allowed:
                    record_gateway_outcome("rejected")
                    debug_response = self.settings.debug.response
                    result = not_allowed_result(
                        raw.get("id$"),
                        pattern=decision.pattern if debug_response else None,
                        allowed=decision.allowed if debug_response and definition else None,
                    )
                    if self._debug_log:
                        logger.debug(
                            "handler-not-allowed",
                            extra={"msg_pattern": decision.pattern, "errdesc": result.out["error$"]},
                        )
                    return result
                record_gateway_outcome("allowed")
                if self._debug_log:
                    logger.debug(
                        "handler-allowed", extra={"msg_pattern": decision.pattern, "params": decision.params}
                    )

            delegate = await self.prepare(raw, ctx)

            for hook in self.hooks.get("action"):
                out = await invoke(hook, delegate, msg, ctx)
                if out:
                    record_gateway_outcome("short_circuit")
                    if self._debug_log:
                        logger.debug("handler-hook-action", extra={"out": out})
                    return out

            if (ctx.get("gateway$") or {}).get("local"):
                msg["local$"] = True

            if self._debug_log:
                logger.debug("handler-act", extra={"act_msg": msg})
            reply = await delegate.dispatch(msg)

            for hook in self.hooks.get("result"):
                await invoke(hook, delegate, reply.out, msg, reply.error, reply.meta, ctx)

            return self._normalize(reply)

    def _normalize(self, reply: Reply) -> GatewayResult:
        debug_response = self.settings.debug.response
        out = externalize_reply(reply.out, reply.meta, verbose=debug_response)
        gateway = out.pop("gateway$", None) or {}
        result = GatewayResult(error=False, out=out, meta=reply.meta.to_dict(), gateway=gateway)

        if reply.error is None:
            record_gateway_outcome("ok")
            return result

        out["meta$"]["error"] = True
        result.error = True
        result.out = error_descriptor(
            reply.error,
            out["meta$"],
            include_message=self.settings.error.message,
            include_details=self.settings.error.details,
            include_stack=debug_response,
        )
        record_gateway_outcome("error")
        logger.warning(
            "handler-act-error",
            extra={
                "error_id": result.out["id"],
                "error_name": result.out["name"],
                "error_code": result.out.get("code"),
                "msg_pattern": reply.meta.pattern,
            },
        )
        return result


__all__ = ["Gateway", "parse_json"]
