"""Client side of the tool RPC protocol.

Tool names are dot-namespaced; the first segment picks the service:

    installments.* / characters.* / places.*
        create | update | delete   → store-write
        anything else              → store-read
    weather.*                      → weather
    geo.*                          → geo

Two transports carry the envelope: HttpTransport posts it to
`{base_url}/api/rpc/{category}`, LocalTransport hands it to in-process
routers (tests, dry runs, the MCP server).
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import Any, Protocol

import httpx

from fantasy_diary.models import ToolSpec
from fantasy_diary.rpc import METHOD_NOT_FOUND, PROTOCOL_VERSION, ToolRouter

logger = logging.getLogger(__name__)

CATEGORIES: tuple[str, ...] = ("store-read", "store-write", "weather", "geo")

_STORE_ENTITIES = {"installments", "characters", "places"}
_WRITE_ACTIONS = {"create", "update", "delete"}


class ToolError(RuntimeError):
    """Base class for failures seen by the tool client."""


class ToolCallError(ToolError):
    """The remote router answered with an error envelope."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


class ToolTransportError(ToolError):
    """The envelope could not be delivered or the reply was not JSON."""


def category_for(name: str) -> str:
    """Return the service category that owns tool `name`."""
    prefix, _, action = name.partition(".")
    if prefix in _STORE_ENTITIES:
        return "store-write" if action in _WRITE_ACTIONS else "store-read"
    if prefix == "weather":
        return "weather"
    if prefix == "geo":
        return "geo"
    raise ToolCallError(METHOD_NOT_FOUND, f"Unknown tool category: {prefix}")


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------

class Transport(Protocol):
    async def send(self, category: str, body: dict[str, Any]) -> dict[str, Any]: ...


class LocalTransport:
    """Delivers envelopes straight to in-process routers."""

    def __init__(self, routers: dict[str, ToolRouter]) -> None:
        self._routers = routers

    async def send(self, category: str, body: dict[str, Any]) -> dict[str, Any]:
        router = self._routers.get(category)
        if router is None:
            raise ToolTransportError(f"No router registered for category {category}")
        return await router.handle(body)


class HttpTransport:
    """Posts envelopes to `{base_url}/api/rpc/{category}` with httpx.

    The JSON body is read regardless of the HTTP status: error envelopes
    arrive with 4xx/5xx codes and still carry the failure details.
    """

    def __init__(self, base_url: str, timeout: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def send(self, category: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/api/rpc/{category}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body)
        except httpx.ConnectError as e:
            raise ToolTransportError(f"Cannot connect to tool service at {url}") from e
        except httpx.TimeoutException as e:
            raise ToolTransportError(f"Tool service {category} timed out after {self._timeout}s") from e
        try:
            data = resp.json()
        except ValueError as e:
            raise ToolTransportError(
                f"Tool service {category} returned HTTP {resp.status_code} without a JSON body"
            ) from e
        if not isinstance(data, dict):
            raise ToolTransportError(f"Tool service {category} returned a non-object envelope")
        return data


# ---------------------------------------------------------------------------
# ToolClient
# ---------------------------------------------------------------------------

def decode_result(result: Any) -> Any:
    """Unwrap `{"content": [{"type": "text", "text": ...}]}` into a value.

    Text that is not JSON comes back as the raw string.
    """
    if not isinstance(result, dict) or not isinstance(result.get("content"), list):
        return result
    texts = [
        part.get("text", "")
        for part in result["content"]
        if isinstance(part, dict) and part.get("type") == "text"
    ]
    text = "".join(texts)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


class ToolClient:
    def __init__(self, transport: Transport, categories: tuple[str, ...] = CATEGORIES) -> None:
        self._transport = transport
        self._categories = categories
        self._ids = itertools.count(1)

    def _envelope(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "id": next(self._ids),
            "method": method,
            "params": params,
        }

    async def _request(self, category: str, method: str, params: dict[str, Any]) -> Any:
        reply = await self._transport.send(category, self._envelope(method, params))
        if "error" in reply:
            error = reply["error"] or {}
            raise ToolCallError(
                error.get("code", 0),
                error.get("message", "Unknown tool error"),
                error.get("data"),
            )
        return reply.get("result")

    async def list_tools(self) -> list[ToolSpec]:
        """Fetch every category's catalog concurrently and merge them."""
        replies = await asyncio.gather(
            *(self._request(category, "tools/list", {}) for category in self._categories)
        )
        specs: list[ToolSpec] = []
        for reply in replies:
            for tool in (reply or {}).get("tools", []):
                specs.append(ToolSpec(
                    name=tool["name"],
                    description=tool.get("description", ""),
                    input_schema=tool.get("inputSchema", {}),
                ))
        logger.debug("tool catalog: %d tools", len(specs))
        return specs

    async def call(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Invoke one tool and return its decoded result."""
        category = category_for(name)
        result = await self._request(
            category, "tools/call", {"name": name, "arguments": arguments or {}}
        )
        return decode_result(result)
