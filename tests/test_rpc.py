"""Tests for fantasy_diary.rpc — envelope handling, list/call, error codes."""

import json

import pytest
from pydantic import BaseModel

from fantasy_diary.rpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    ToolDefinition,
    ToolRouter,
)


class EchoArgs(BaseModel):
    text: str
    times: int = 1


class NoArgs(BaseModel):
    pass


def _router(calls: list | None = None, deps=None) -> ToolRouter:
    calls = calls if calls is not None else []

    async def echo(args: EchoArgs, deps):
        calls.append(("echo", args, deps))
        return {"text": args.text * args.times}

    async def explode(args: NoArgs, deps):
        calls.append(("explode", args, deps))
        raise RuntimeError("backing store unavailable")

    return ToolRouter(
        [
            ToolDefinition("demo.echo", "Repeat text.", EchoArgs, echo),
            ToolDefinition("demo.explode", "Always fails.", NoArgs, explode),
        ],
        deps,
    )


def _request(method: str, params: dict | None = None, id=1) -> dict:
    return {"protocolVersion": "2.0", "id": id, "method": method, "params": params or {}}


# ── tools/list ───────────────────────────────────────────


async def test_list_enumerates_exactly_the_registered_tools():
    reply = await _router().handle(_request("tools/list"))
    assert reply["id"] == 1
    assert "error" not in reply
    names = [t["name"] for t in reply["result"]["tools"]]
    assert names == ["demo.echo", "demo.explode"]


async def test_list_includes_input_schema():
    reply = await _router().handle(_request("tools/list"))
    echo = reply["result"]["tools"][0]
    assert echo["description"] == "Repeat text."
    assert echo["inputSchema"]["properties"]["text"]["type"] == "string"
    assert echo["inputSchema"]["required"] == ["text"]


def test_duplicate_tool_names_rejected():
    async def noop(args, deps):
        return {}

    tool = ToolDefinition("demo.noop", "", NoArgs, noop)
    with pytest.raises(ValueError):
        ToolRouter([tool, tool])


# ── tools/call ───────────────────────────────────────────


async def test_call_wraps_result_as_text_content():
    reply = await _router().handle(_request("tools/call", {"name": "demo.echo", "arguments": {"text": "ab", "times": 2}}))
    assert "error" not in reply
    content = reply["result"]["content"]
    assert content[0]["type"] == "text"
    assert json.loads(content[0]["text"]) == {"text": "abab"}


async def test_call_passes_deps_to_handler():
    calls: list = []
    deps = object()
    await _router(calls, deps).handle(_request("tools/call", {"name": "demo.echo", "arguments": {"text": "x"}}))
    assert calls[0][2] is deps


async def test_unknown_tool_never_reaches_a_handler():
    calls: list = []
    reply = await _router(calls).handle(_request("tools/call", {"name": "demo.missing", "arguments": {}}))
    assert reply["error"]["code"] == METHOD_NOT_FOUND
    assert "result" not in reply
    assert calls == []


async def test_invalid_arguments_return_invalid_params():
    calls: list = []
    reply = await _router(calls).handle(_request("tools/call", {"name": "demo.echo", "arguments": {"times": "many"}}))
    assert reply["error"]["code"] == INVALID_PARAMS
    assert reply["error"]["data"]
    assert calls == []


async def test_handler_exception_becomes_internal_error():
    reply = await _router().handle(_request("tools/call", {"name": "demo.explode"}))
    assert reply["error"] == {"code": INTERNAL_ERROR, "message": "backing store unavailable"}
    assert "result" not in reply


async def test_missing_tool_name_is_invalid_params():
    reply = await _router().handle(_request("tools/call", {"arguments": {}}))
    assert reply["error"]["code"] == INVALID_PARAMS


# ── envelope ─────────────────────────────────────────────


async def test_unknown_method():
    reply = await _router().handle(_request("tools/delete", id="abc"))
    assert reply["id"] == "abc"
    assert reply["error"]["code"] == METHOD_NOT_FOUND


@pytest.mark.parametrize("body", [
    [],
    "tools/list",
    {"id": 3, "method": "tools/list"},
    {"protocolVersion": "1.0", "id": 3, "method": "tools/list"},
    {"protocolVersion": "2.0", "id": 3},
    {"protocolVersion": "2.0", "id": 3, "method": "tools/list", "params": []},
])
async def test_malformed_envelopes_are_invalid_requests(body):
    reply = await _router().handle(body)
    assert reply["error"]["code"] == INVALID_REQUEST
    assert reply["protocolVersion"] == "2.0"
    assert "result" not in reply


async def test_best_effort_id_is_echoed_on_envelope_errors():
    reply = await _router().handle({"protocolVersion": "1.0", "id": 7, "method": "tools/list"})
    assert reply["id"] == 7


async def test_unparseable_body_gets_null_id():
    reply = await _router().handle_raw(b"{not json")
    assert reply["id"] is None
    assert reply["error"]["code"] == INVALID_REQUEST


async def test_every_response_has_exactly_one_of_result_or_error():
    router = _router()
    bodies = [
        _request("tools/list"),
        _request("tools/call", {"name": "demo.echo", "arguments": {"text": "x"}}),
        _request("tools/call", {"name": "demo.explode"}),
        _request("tools/call", {"name": "nope"}),
        _request("bogus"),
        {"junk": True},
    ]
    for body in bodies:
        reply = await router.handle(body)
        assert ("result" in reply) != ("error" in reply)
