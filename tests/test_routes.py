"""Smoke tests for the HTTP API (ASGI transport, no server)."""

import json
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from backend.app import create_app
from fantasy_diary.models import ToolCall
from scripted import ScriptedProvider


@pytest.fixture
def app(tmp_path):
    return create_app(tmp_path / "data")


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def _rpc(method, params=None, id=1):
    return {"protocolVersion": "2.0", "id": id, "method": method, "params": params or {}}


# ── health + settings ────────────────────────────────────


async def test_health(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


async def test_settings_masks_api_key(client):
    resp = await client.patch("/api/settings", json={"api_key": "sk-secret", "model": "gpt-4o-mini"})
    assert resp.status_code == 200
    assert resp.json()["api_key"] == "********"
    settings = (await client.get("/api/settings")).json()
    assert settings["api_key"] == "********"
    assert settings["model"] == "gpt-4o-mini"


@pytest.mark.parametrize("body", [
    {"provider": "llama"},
    {"max_iterations": 0},
    {"phase_templates": {"epilogue": "x"}},
])
async def test_settings_rejects_invalid_values(client, app, body):
    resp = await client.patch("/api/settings", json=body)
    assert resp.status_code == 400
    assert app.state.storage.get_config()["provider"] == "openai"


# ── rpc ──────────────────────────────────────────────────


async def test_rpc_tools_list(client):
    resp = await client.post("/api/rpc/geo", json=_rpc("tools/list"))
    assert resp.status_code == 200
    names = [t["name"] for t in resp.json()["result"]["tools"]]
    assert names == ["geo.gridToLatLon", "geo.latLonToGrid"]


async def test_rpc_tools_call(client):
    resp = await client.post("/api/rpc/store-write", json=_rpc(
        "tools/call", {"name": "characters.create", "arguments": {"name": "Eun-ji"}}, id="abc",
    ))
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == "abc"
    assert json.loads(body["result"]["content"][0]["text"])["name"] == "Eun-ji"


@pytest.mark.parametrize("category, payload, status, code", [
    ("geo", _rpc("tools/call", {"name": "geo.nope"}), 404, -32601),
    ("geo", _rpc("tools/call", {"name": "geo.gridToLatLon", "arguments": {"nx": "x"}}), 400, -32602),
    ("geo", {"id": 1, "method": "tools/list"}, 400, -32600),
    ("store-read", _rpc("tools/call", {"name": "characters.get", "arguments": {"name": "Nobody"}}), 500, -32000),
])
async def test_rpc_error_status(client, category, payload, status, code):
    resp = await client.post(f"/api/rpc/{category}", json=payload)
    assert resp.status_code == status
    assert resp.json()["error"]["code"] == code


async def test_rpc_malformed_json(client):
    resp = await client.post("/api/rpc/geo", content=b"{not json")
    assert resp.status_code == 400
    assert resp.json()["id"] is None


async def test_rpc_unknown_category(client):
    resp = await client.post("/api/rpc/spells", json=_rpc("tools/list"))
    assert resp.status_code == 404


# ── installments ─────────────────────────────────────────


async def test_generate_and_read_back(client):
    provider = ScriptedProvider([
        "plan",
        "outline",
        [ToolCall(id="1", name="characters.create", arguments={"name": "Eun-ji"})],
        "Eun-ji woke early.",
        "Eun-ji woke early.",
        "OK",
    ])
    with patch("backend.routes.installments.create_provider", return_value=provider):
        resp = await client.post("/api/installments", json={"currentTime": "2025-03-01T09:30:00Z"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["installmentId"] == "202503010930"
    assert body["stats"]["charactersAdded"] == 1
    assert body["stats"]["wordCount"] == len("Eun-ji woke early.")

    listed = (await client.get("/api/installments")).json()
    assert [i["id"] for i in listed] == ["202503010930"]
    one = (await client.get("/api/installments/202503010930")).json()
    assert one["content"] == "Eun-ji woke early."


async def test_generate_dry_run_persists_nothing(client, app):
    resp = await client.post("/api/installments", json={"currentTime": "2025-03-01T09:30:00Z", "dryRun": True})
    assert resp.json()["success"] is True
    assert app.state.storage.installments.list() == []


async def test_generate_invalid_time(client):
    resp = await client.post("/api/installments", json={"currentTime": "soon", "dryRun": True})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "Invalid currentTime format"


async def test_generate_rejects_concurrent_run(client, app):
    app.state.running.add("202503010930")
    resp = await client.post("/api/installments", json={"currentTime": "2025-03-01T09:30:00Z", "dryRun": True})
    assert resp.status_code == 409


async def test_get_missing_installment(client):
    resp = await client.get("/api/installments/209901010000")
    assert resp.status_code == 404
