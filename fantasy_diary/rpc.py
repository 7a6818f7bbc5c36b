"""Tool registry and JSON-RPC style router.

Each tool service owns one ToolRouter holding its ToolDefinitions. The router
answers exactly two methods:

    tools/list   → {"tools": [{name, description, inputSchema}, ...]}
    tools/call   → {"content": [{"type": "text", "text": <json result>}]}

Envelope:

    request   {"protocolVersion": "2.0", "id": ..., "method": ..., "params": {...}}
    success   {"protocolVersion": "2.0", "id": ..., "result": {...}}
    failure   {"protocolVersion": "2.0", "id": ..., "error": {code, message, data?}}

Handlers are called as `await handler(args, deps)` where `args` is the
validated pydantic model and `deps` is whatever the service was built with
(a Storage, an httpx client factory, ...). The router never retries.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2.0"

INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32000

Handler = Callable[[Any, Any], Awaitable[Any]]


class RpcError(Exception):
    """A failure that maps onto an RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            error["data"] = self.data
        return error


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    args_model: type[BaseModel]
    handler: Handler

    def spec(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.args_model.model_json_schema(),
        }


# ---------------------------------------------------------------------------
# Envelope helpers
# ---------------------------------------------------------------------------

def success(request_id: Any, result: Any) -> dict[str, Any]:
    return {"protocolVersion": PROTOCOL_VERSION, "id": request_id, "result": result}


def failure(request_id: Any, error: RpcError) -> dict[str, Any]:
    return {"protocolVersion": PROTOCOL_VERSION, "id": request_id, "error": error.to_dict()}


def text_content(result: Any) -> dict[str, Any]:
    """Wrap a handler return value as a text-serialized tool result."""
    return {"content": [{"type": "text", "text": json.dumps(result, ensure_ascii=False, default=str)}]}


def _best_effort_id(body: Any) -> Any:
    if isinstance(body, dict):
        request_id = body.get("id")
        if request_id is None or isinstance(request_id, (str, int)):
            return request_id
    return None


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class ToolRouter:
    """Dispatches list/call requests to a fixed set of tool definitions."""

    def __init__(self, tools: Iterable[ToolDefinition], deps: Any = None) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool
        self._deps = deps

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def list_tools(self) -> list[dict[str, Any]]:
        return [tool.spec() for tool in self._tools.values()]

    async def call(self, name: str, arguments: dict[str, Any] | None) -> Any:
        """Validate and run one tool. Raises RpcError on any failure."""
        tool = self._tools.get(name)
        if tool is None:
            raise RpcError(METHOD_NOT_FOUND, f"Unknown tool: {name}")
        try:
            args = tool.args_model.model_validate(arguments or {})
        except ValidationError as e:
            raise RpcError(
                INVALID_PARAMS,
                f"Invalid arguments for {name}",
                json.loads(e.json(include_url=False)),
            ) from e
        try:
            return await tool.handler(args, self._deps)
        except RpcError:
            raise
        except Exception as e:
            logger.warning("Tool %s failed: %s", name, e)
            raise RpcError(INTERNAL_ERROR, str(e) or type(e).__name__) from e

    async def handle(self, body: Any) -> dict[str, Any]:
        """Answer one decoded request body with a success or failure envelope."""
        request_id = _best_effort_id(body)
        if not isinstance(body, dict):
            return failure(None, RpcError(INVALID_REQUEST, "Request body must be an object"))
        if body.get("protocolVersion") != PROTOCOL_VERSION:
            return failure(request_id, RpcError(INVALID_REQUEST, "Unsupported protocolVersion"))
        if "id" in body and not (body["id"] is None or isinstance(body["id"], (str, int))):
            return failure(None, RpcError(INVALID_REQUEST, "id must be a string, number or null"))
        method = body.get("method")
        if not isinstance(method, str):
            return failure(request_id, RpcError(INVALID_REQUEST, "method must be a string"))
        params = body.get("params", {})
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return failure(request_id, RpcError(INVALID_REQUEST, "params must be an object"))

        if method == "tools/list":
            return success(request_id, {"tools": self.list_tools()})

        if method == "tools/call":
            name = params.get("name")
            if not isinstance(name, str) or not name:
                return failure(request_id, RpcError(INVALID_PARAMS, "params.name is required"))
            arguments = params.get("arguments", {})
            if arguments is not None and not isinstance(arguments, dict):
                return failure(request_id, RpcError(INVALID_PARAMS, "params.arguments must be an object"))
            try:
                result = await self.call(name, arguments)
            except RpcError as e:
                return failure(request_id, e)
            return success(request_id, text_content(result))

        return failure(request_id, RpcError(METHOD_NOT_FOUND, f"Unknown method: {method}"))

    async def handle_raw(self, raw: bytes | str) -> dict[str, Any]:
        """Decode a JSON body and answer it; undecodable bodies get id null."""
        try:
            body = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return failure(None, RpcError(INVALID_REQUEST, "Malformed JSON body"))
        return await self.handle(body)
