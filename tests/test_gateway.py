"""Gateway handler: allow-list, isolation, hooks and result normalization."""
from __future__ import annotations

import asyncio
import json

import pytest

from azure_env.config import Settings
from azure_env.errors import ActionError, GatewayParseError
from azure_env.gateway import Gateway, GatewayResult, parse_json
from azure_env.messaging import MessageRouter


def make_gateway(**options) -> tuple[Gateway, MessageRouter, list[dict]]:
    router = MessageRouter()
    calls: list[dict] = []

    async def echo(msg, ctx):
        calls.append(dict(msg))
        return {"ok": True, "msg": msg, "custom": dict(ctx.custom)}

    async def fail(msg, ctx):
        raise ActionError("bad-thing", "secret internals", details={"table": "users"})

    async def directive(msg, ctx):
        return {"ok": True, "gateway$": {"auth": {"token": "t"}}}

    router.add("role:test,cmd:echo", echo)
    router.add("role:test,cmd:fail", fail)
    router.add("role:test,cmd:directive", directive)
    return Gateway(router, Settings(**options)), router, calls


@pytest.mark.asyncio
async def test_allowed_message_is_dispatched_and_meta_trimmed() -> None:
    gateway, _, calls = make_gateway(allow={"role:test,cmd:echo": True})

    result = await gateway.handler({"role": "test", "cmd": "echo", "x": 1, "id$": "m1"})

    assert isinstance(result, GatewayResult)
    assert result.error is False
    assert result.out["ok"] is True
    assert result.out["meta$"] == {"id": "m1"}
    assert result.out["custom"] == {"safe": False}
    assert result.meta["pattern"] == "cmd:echo,role:test"
    assert result.gateway == {}
    assert calls == [{"role": "test", "cmd": "echo", "x": 1}]


@pytest.mark.asyncio
async def test_rejected_message_gets_stable_descriptor_without_internals() -> None:
    gateway, _, calls = make_gateway(allow={"role:test,cmd:echo": True})

    result = await gateway.handler({"role": "test", "cmd": "fail", "id$": "m2"})

    assert result.error is True
    assert calls == []
    out = result.out
    assert out["code"] == "not-allowed"
    assert out["name"] == "Error"
    assert len(out["id"]) == 9
    assert out["meta$"] == {"id": "m2", "error": True}
    assert out["error$"]["code"] == "not-allowed"
    assert "pattern" not in out
    assert "allowed" not in out


@pytest.mark.asyncio
async def test_rejection_includes_pattern_in_debug_response_mode() -> None:
    gateway, _, _ = make_gateway(allow={"role:test,cmd:echo": True}, debug={"response": True})

    result = await gateway.handler({"role": "test", "cmd": "fail"})

    assert result.out["pattern"] == "cmd:fail,role:test"
    assert result.out["allowed"] is False


@pytest.mark.asyncio
async def test_unknown_message_rejected_when_allow_list_enabled() -> None:
    gateway, _, _ = make_gateway(allow={"role:test,cmd:echo": True})

    result = await gateway.handler({"role": "nobody"})
    assert result.out["code"] == "not-allowed"


@pytest.mark.asyncio
async def test_error_message_and_details_are_omitted_by_default() -> None:
    gateway, _, _ = make_gateway()

    result = await gateway.handler({"role": "test", "cmd": "fail"})

    assert result.error is True
    assert result.out["name"] == "ActionError"
    assert result.out["code"] == "bad-thing"
    assert "message" not in result.out
    assert "details" not in result.out
    assert "stack" not in result.out
    assert result.out["meta$"]["error"] is True


@pytest.mark.asyncio
async def test_error_message_and_details_when_enabled() -> None:
    gateway, _, _ = make_gateway(error={"message": True, "details": True}, debug={"response": True})

    result = await gateway.handler({"role": "test", "cmd": "fail"})

    assert result.out["message"] == "secret internals"
    assert result.out["details"] == {"table": "users"}
    assert "ActionError" in result.out["stack"]
    assert result.out["meta$"]["pattern"] == "cmd:fail,role:test"


@pytest.mark.asyncio
async def test_gateway_directives_move_to_the_envelope() -> None:
    gateway, _, _ = make_gateway()

    result = await gateway.handler({"role": "test", "cmd": "directive"})

    assert result.gateway == {"auth": {"token": "t"}}
    assert "gateway$" not in result.out
    assert result.to_dict()["gateway$"] == {"auth": {"token": "t"}}


@pytest.mark.asyncio
async def test_action_hook_short_circuits_dispatch() -> None:
    gateway, _, calls = make_gateway()
    seen = []

    async def quiet(delegate, msg, ctx):
        seen.append("quiet")
        return None

    def mock(delegate, msg, ctx):
        return {"mocked": msg["cmd"]}

    def never(delegate, msg, ctx):
        raise AssertionError("later hooks must not run")

    for hook in (quiet, mock, never):
        gateway.hooks.add("action", hook)

    result = await gateway.handler({"role": "test", "cmd": "echo"})

    assert result == {"mocked": "echo"}
    assert seen == ["quiet"]
    assert calls == []


@pytest.mark.asyncio
async def test_fixed_custom_and_delegate_hooks_shape_the_request() -> None:
    gateway, _, calls = make_gateway(fixed={"tenant": "base"}, custom={"safe": False, "src": "cfg"})

    gateway.hooks.add("fixed", {"tenant": "hooked"})
    gateway.hooks.add("custom", lambda acc, raw, ctx: acc.update(user=ctx["user"]))

    def tag_delegate(delegate, raw, ctx):
        delegate.custom["tagged"] = True

    gateway.hooks.add("delegate", tag_delegate)

    result = await gateway.handler({"role": "test", "cmd": "echo", "tenant": "evil"}, {"user": "u1"})

    assert calls[0]["tenant"] == "hooked"
    assert result.out["custom"] == {"safe": False, "src": "cfg", "user": "u1", "tagged": True}


@pytest.mark.asyncio
async def test_result_hooks_see_the_outcome() -> None:
    gateway, _, _ = make_gateway()
    outcomes = []

    async def record(delegate, out, msg, err, meta, ctx):
        outcomes.append((msg["cmd"], type(err).__name__ if err else None, meta.pattern))

    gateway.hooks.add("result", record)

    await gateway.handler({"role": "test", "cmd": "echo"})
    await gateway.handler({"role": "test", "cmd": "fail"})

    assert outcomes == [
        ("echo", None, "cmd:echo,role:test"),
        ("fail", "ActionError", "cmd:fail,role:test"),
    ]


@pytest.mark.asyncio
async def test_concurrent_requests_get_isolated_delegates() -> None:
    gateway, router, _ = make_gateway()

    async def slow(msg, ctx):
        await asyncio.sleep(0.01)
        return {"user": ctx.custom["user"]}

    router.add("role:test,cmd:slow", slow)
    gateway.hooks.add("custom", lambda acc, raw, ctx: acc.update(user=raw["who"]))

    results = await asyncio.gather(
        *(gateway.handler({"role": "test", "cmd": "slow", "who": f"u{i}"}) for i in range(5))
    )

    assert [result.out["user"] for result in results] == [f"u{i}" for i in range(5)]


@pytest.mark.asyncio
async def test_prepare_returns_sealed_delegate() -> None:
    gateway, _, _ = make_gateway(fixed={"a": 1})

    delegate = await gateway.prepare({}, {})

    assert delegate.sealed
    with pytest.raises(TypeError):
        delegate.fixed["a"] = 2


@pytest.mark.asyncio
async def test_client_timeout_requires_permission() -> None:
    gateway, router, _ = make_gateway()

    result = await gateway.handler({"role": "test", "cmd": "echo", "timeout$": 500})
    assert result.meta["timeout"] == router.timeout


@pytest.mark.asyncio
async def test_client_timeout_up_to_configured_maximum() -> None:
    gateway, router, _ = make_gateway(timeout={"client": True, "max": 1000})

    allowed = await gateway.handler({"role": "test", "cmd": "echo", "timeout$": 500})
    too_long = await gateway.handler({"role": "test", "cmd": "echo", "timeout$": 5000})

    assert allowed.meta["timeout"] == 500
    assert too_long.meta["timeout"] == router.timeout


@pytest.mark.asyncio
async def test_client_timeout_uses_router_default_when_max_not_positive() -> None:
    gateway, router, _ = make_gateway(timeout={"client": True, "max": 0})

    result = await gateway.handler({"role": "test", "cmd": "echo", "timeout$": router.timeout})
    over = await gateway.handler({"role": "test", "cmd": "echo", "timeout$": router.timeout + 1})

    assert result.meta["timeout"] == router.timeout
    assert over.meta["timeout"] == router.timeout


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), 0, -1, "soon"])
async def test_unusable_client_timeout_falls_back_to_default(value) -> None:
    gateway, router, _ = make_gateway(timeout={"client": True, "max": 1000})

    result = await gateway.handler({"role": "test", "cmd": "echo", "timeout$": value})

    assert result.error is False
    assert result.meta["timeout"] == router.timeout


@pytest.mark.asyncio
async def test_client_timeout_from_parsed_json_overflow() -> None:
    gateway, router, _ = make_gateway(timeout={"client": True, "max": 1000})

    result = await gateway.handler(parse_json(b'{"role": "test", "cmd": "echo", "timeout$": 1e400}'))

    assert result.error is False
    assert result.meta["timeout"] == router.timeout


@pytest.mark.asyncio
async def test_client_message_id_reaches_reply_meta() -> None:
    gateway, _, _ = make_gateway()

    ok = await gateway.handler({"role": "test", "cmd": "echo", "id$": "m2"})
    failed = await gateway.handler({"role": "test", "cmd": "fail", "id$": "m3"})

    assert ok.meta["id"] == "m2"
    assert ok.out["meta$"] == {"id": "m2"}
    assert failed.out["meta$"] == {"id": "m3", "error": True}


@pytest.mark.asyncio
async def test_local_gateway_directive_marks_message() -> None:
    gateway, _, _ = make_gateway()
    seen = []

    async def capture(delegate, msg, ctx):
        seen.append(dict(msg))
        return None

    gateway.hooks.add("result", lambda delegate, out, msg, err, meta, ctx: seen.append(dict(msg)))
    gateway.hooks.add("action", capture)

    await gateway.handler({"role": "test", "cmd": "echo"}, {"gateway$": {"local": True}})

    assert "local$" not in seen[0]
    assert seen[1]["local$"] is True


def test_parse_json() -> None:
    assert parse_json(None) == {}
    assert parse_json(b'{"a": 1}') == {"a": 1}
    assert parse_json(json.dumps([1])) == [1]

    error = parse_json("{nope")
    assert isinstance(error, GatewayParseError)
    assert error.handler["input$"] == "{nope"
    assert error.handler["error$"]

    undecodable = parse_json(b'{"a": "\xff"}')
    assert isinstance(undecodable, GatewayParseError)
    assert undecodable.handler["input$"] == '{"a": "\ufffd"}'
