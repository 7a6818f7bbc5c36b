"""Tests for the store-read and store-write tools through their routers."""

import json

import pytest

from fantasy_diary.rpc import INTERNAL_ERROR, INVALID_PARAMS


async def _call(router, name, arguments=None):
    """Raw tools/call response, decoded from its text content."""
    response = await router.handle({
        "protocolVersion": "2.0",
        "id": 1,
        "method": "tools/call",
        "params": {"name": name, "arguments": arguments or {}},
    })
    if "error" in response:
        return response["error"]
    return json.loads(response["result"]["content"][0]["text"])


# ── characters ───────────────────────────────────────────


async def test_character_lifecycle(routers):
    write, read = routers["store-write"], routers["store-read"]
    created = await _call(write, "characters.create", {
        "name": "Eun-ji", "personality": "stubborn", "character_traits": ["loyal"],
    })
    assert created["id"]

    updated = await _call(write, "characters.update", {"name": "Eun-ji", "current_place": "Seoul Station"})
    assert updated["id"] == created["id"]
    assert updated["personality"] == "stubborn"
    assert updated["current_place"] == "Seoul Station"

    listed = await _call(read, "characters.list", {"name": "eun"})
    assert listed["count"] == 1
    fetched = await _call(read, "characters.get", {"id": created["id"]})
    assert fetched["character_traits"] == ["loyal"]

    deleted = await _call(write, "characters.delete", {"name": "Eun-ji"})
    assert deleted == {"deleted": created["id"]}
    missing = await _call(read, "characters.get", {"name": "Eun-ji"})
    assert missing["code"] == INTERNAL_ERROR
    assert "not found" in missing["message"]


async def test_duplicate_create_message(routers):
    await _call(routers["store-write"], "characters.create", {"name": "Eun-ji"})
    error = await _call(routers["store-write"], "characters.create", {"name": "Eun-ji"})
    assert error["code"] == INTERNAL_ERROR
    assert "already exists" in error["message"]


@pytest.mark.parametrize("name, arguments", [
    ("characters.create", {}),
    ("characters.update", {"current_status": "injured"}),
    ("characters.get", {}),
    ("places.create", {"name": "Nowhere", "latitude": 123}),
    ("installments.create", {"id": "2025-03-01", "content": "x"}),
    ("installments.create", {"id": "202503010930", "content": ""}),
])
async def test_invalid_arguments(routers, name, arguments):
    category = "store-read" if name.endswith(".get") else "store-write"
    error = await _call(routers[category], name, arguments)
    assert error["code"] == INVALID_PARAMS


# ── places ───────────────────────────────────────────────


async def test_place_coordinates_and_weather(routers):
    write = routers["store-write"]
    await _call(write, "places.create", {"name": "Seoul Station", "latitude": 37.5547, "longitude": 126.9707})
    updated = await _call(write, "places.update", {"name": "Seoul Station", "last_weather_condition": "fog"})
    assert updated["latitude"] == 37.5547
    assert updated["last_weather_condition"] == "fog"


# ── installments ─────────────────────────────────────────


async def test_installments(routers):
    write, read = routers["store-write"], routers["store-read"]
    for id in ("202503010930", "202503020930"):
        await _call(write, "installments.create", {"id": id, "content": f"entry {id}"})

    latest = await _call(read, "installments.list", {"limit": 1})
    assert [i["id"] for i in latest["installments"]] == ["202503020930"]

    updated = await _call(write, "installments.update", {"id": "202503010930", "summary": "short"})
    assert updated["summary"] == "short"
    assert updated["content"] == "entry 202503010930"

    missing = await _call(read, "installments.get", {"id": "209901010000"})
    assert "not found" in missing["message"]


async def test_list_tools_describes_every_tool(routers):
    names = {t["name"] for t in routers["store-read"].list_tools()}
    assert names == {
        "installments.list", "installments.get",
        "characters.list", "characters.get",
        "places.list", "places.get",
    }
    [create] = [t for t in routers["store-write"].list_tools() if t["name"] == "characters.create"]
    assert "name" in create["inputSchema"]["required"]
