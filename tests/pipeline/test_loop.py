"""Tests for the tool-calling loop: termination, cap, soft errors, side effects."""

import asyncio

import pytest

from fantasy_diary.drafts import SideEffectRecorder
from fantasy_diary.models import Draft, ToolCall
from fantasy_diary.pipeline import MaxIterationsError, normalize_payload, run_tool_loop
from scripted import ScriptedProvider


def _call(id: str, name: str, /, **arguments) -> ToolCall:
    return ToolCall(id=id, name=name, arguments=arguments)


async def _loop(provider, tool_client, **kwargs) -> str:
    catalog = await tool_client.list_tools()
    return await run_tool_loop(
        provider, tool_client, system="sys", instruction="write", catalog=catalog, **kwargs
    )


# ── normalize_payload ────────────────────────────────────


def test_normalize_payload():
    assert normalize_payload({"a": 1}) == {"a": 1}
    assert normalize_payload([1, 2]) == {"result": [1, 2]}
    assert normalize_payload("sunny") == {"result": "sunny"}
    assert normalize_payload(None) == {"result": None}


# ── termination ──────────────────────────────────────────


async def test_text_reply_ends_loop_immediately(tool_client):
    provider = ScriptedProvider(["Dear diary"])
    assert await _loop(provider, tool_client) == "Dear diary"
    assert provider.systems == ["sys"]
    assert provider.transcripts[0][0].content == "write"


async def test_tool_then_text(tool_client):
    provider = ScriptedProvider([
        [_call("1", "geo.gridToLatLon", nx=60, ny=127)],
        "done",
    ])
    assert await _loop(provider, tool_client) == "done"
    tool_turn = provider.transcripts[1][-1]
    assert tool_turn.role == "tool"
    assert tool_turn.tool_call_id == "1"
    assert tool_turn.payload["nx"] == 60


async def test_cap_reached_raises(tool_client):
    provider = ScriptedProvider([[_call(str(i), "places.list")] for i in range(5)])
    with pytest.raises(MaxIterationsError, match="Max iterations \\(3\\)"):
        await _loop(provider, tool_client, max_iterations=3)
    assert len(provider.transcripts) == 3


async def test_default_cap_is_twenty(tool_client):
    provider = ScriptedProvider([[_call(str(i), "places.list")] for i in range(25)])
    with pytest.raises(MaxIterationsError):
        await _loop(provider, tool_client)
    assert provider.remaining == 5


async def test_finishes_on_last_allowed_iteration(tool_client):
    provider = ScriptedProvider([[_call("1", "places.list")], [_call("2", "places.list")], "ok"])
    assert await _loop(provider, tool_client, max_iterations=3) == "ok"


# ── soft errors ──────────────────────────────────────────


async def test_tool_error_is_fed_back_and_loop_continues(tool_client):
    provider = ScriptedProvider([
        [_call("1", "characters.create")],  # missing name
        [_call("2", "characters.create", name="Eun-ji")],
        "fixed it",
    ])
    assert await _loop(provider, tool_client) == "fixed it"
    error_turn = provider.transcripts[1][-1]
    assert error_turn.tool_call_id == "1"
    assert "error" in error_turn.payload
    ok_turn = provider.transcripts[2][-1]
    assert ok_turn.payload["name"] == "Eun-ji"


async def test_unknown_tool_is_a_soft_error(tool_client):
    provider = ScriptedProvider([[_call("1", "spells.cast")], "ok"])
    assert await _loop(provider, tool_client) == "ok"
    assert "Unknown tool category" in provider.transcripts[1][-1].payload["error"]


async def test_unparseable_arguments_are_answered_without_calling(tool_client, storage):
    bad = ToolCall(id="1", name="characters.create", parse_error="Arguments are not valid JSON")
    provider = ScriptedProvider([[bad], "ok"])
    assert await _loop(provider, tool_client) == "ok"
    assert provider.transcripts[1][-1].payload == {"error": "Arguments are not valid JSON"}
    assert storage.characters.list() == []


# ── batches ──────────────────────────────────────────────


@pytest.mark.parametrize("parallel", [True, False])
async def test_batch_results_keep_request_order(tool_client, parallel):
    provider = ScriptedProvider([
        [
            _call("a", "geo.gridToLatLon", nx=60, ny=127),
            _call("b", "characters.get", name="nobody"),
            _call("c", "geo.latLonToGrid", latitude=37.5665, longitude=126.978),
        ],
        "ok",
    ])
    await _loop(provider, tool_client, parallel=parallel)
    tool_turns = [m for m in provider.transcripts[1] if m.role == "tool"]
    assert [m.tool_call_id for m in tool_turns] == ["a", "b", "c"]
    assert "error" in tool_turns[1].payload
    assert tool_turns[2].payload["nx"] == 60


async def test_parallel_batch_runs_concurrently():
    started: list[str] = []
    release = asyncio.Event()

    class SlowTools:
        async def call(self, name, arguments):
            started.append(name)
            if len(started) == 2:
                release.set()
            await asyncio.wait_for(release.wait(), timeout=1)
            return {"name": name}

    provider = ScriptedProvider([[_call("1", "places.list"), _call("2", "characters.list")], "ok"])
    result = await run_tool_loop(
        provider, SlowTools(), system="", instruction="go", catalog=[], parallel=True
    )
    assert result == "ok"
    assert started == ["places.list", "characters.list"]


# ── side effects ─────────────────────────────────────────


async def test_side_effects_recorded_into_draft(tool_client):
    draft = Draft()
    provider = ScriptedProvider([
        [
            _call("1", "characters.create", name="Eun-ji", personality="stubborn"),
            _call("2", "places.create", name="Gwanghwamun Station"),
        ],
        [_call("3", "characters.update", name="Eun-ji", current_status="injured")],
        "done",
    ])
    await _loop(provider, tool_client, recorder=SideEffectRecorder(draft))
    assert len(draft.characters) == 1
    assert draft.characters[0].personality == "stubborn"
    assert draft.characters[0].current_status == "injured"
    assert draft.characters[0].id
    assert [p.name for p in draft.places] == ["Gwanghwamun Station"]


async def test_duplicate_create_still_records_arguments(tool_client):
    await tool_client.call("characters.create", {"name": "Eun-ji"})
    draft = Draft()
    provider = ScriptedProvider([
        [_call("1", "characters.create", name="Eun-ji", current_status="injured")],
        "done",
    ])
    await _loop(provider, tool_client, recorder=SideEffectRecorder(draft))
    assert "already exists" in provider.transcripts[1][-1].payload["error"]
    assert [(c.name, c.current_status) for c in draft.characters] == [("Eun-ji", "injured")]


@pytest.mark.parametrize("call", [
    _call("1", "characters.update", id="ghost", current_status="x"),
    _call("1", "places.create", name="Seoul Station", latitude=500),
])
async def test_rejected_mutation_is_not_recorded(tool_client, call):
    draft = Draft()
    provider = ScriptedProvider([[call], "done"])
    await _loop(provider, tool_client, recorder=SideEffectRecorder(draft))
    assert "error" in provider.transcripts[1][-1].payload
    assert draft.characters == []
    assert draft.places == []
