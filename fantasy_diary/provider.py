"""Reasoning providers — the model side of the tool-calling loop.

The loop depends only on this capability:

    async def submit(system, transcript, tools) -> ProviderTurn
    def append_tool_results(transcript, outcomes) -> transcript

The transcript is provider-neutral (fantasy_diary.models.Message). Each
provider converts it to its own wire format on submit and keeps the native
assistant turn in `Message.raw` so provider-only fields (Gemini thought
signatures, OpenAI tool call ids) survive the round trip.

Implementations:

    OpenAIProvider   — POST {url}/v1/chat/completions with function tools.
    GeminiProvider   — POST {url}/v1beta/models/{model}:generateContent.
    EchoProvider     — answers with the last user instruction, never calls
                       tools. Useful for wiring smoke tests and --dry-run.

Tool names are dot-namespaced internally and sent to providers with dots
replaced by underscores (`characters.create` → `characters_create`).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import httpx

from fantasy_diary.config import Settings
from fantasy_diary.models import Message, ProviderTurn, ToolCall, ToolCallOutcome, ToolSpec

logger = logging.getLogger(__name__)


class ProviderError(RuntimeError):
    """Raised when the reasoning backend cannot be reached or answers badly."""


def safe_tool_name(name: str) -> str:
    return name.replace(".", "_")


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class ReasoningProvider(Protocol):
    async def submit(
        self, system: str, transcript: list[Message], tools: list[ToolSpec]
    ) -> ProviderTurn: ...

    def append_tool_results(
        self, transcript: list[Message], outcomes: list[ToolCallOutcome]
    ) -> list[Message]: ...


class _ProviderBase:
    """Shared transcript handling and HTTP plumbing."""

    name = "base"
    default_url = ""

    def __init__(
        self,
        provider_url: str = "",
        api_key: str = "",
        model: str = "",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = (provider_url or self.default_url).rstrip("/")
        self._api_key = api_key
        self._model = model
        self._timeout = timeout

    def append_tool_results(
        self, transcript: list[Message], outcomes: list[ToolCallOutcome]
    ) -> list[Message]:
        for outcome in outcomes:
            transcript.append(Message(
                role="tool",
                tool_call_id=outcome.call.id,
                name=outcome.call.name,
                payload=outcome.payload,
                content=json.dumps(outcome.payload, ensure_ascii=False, default=str),
            ))
        return transcript

    async def _post(self, url: str, body: dict, headers: dict[str, str]) -> dict:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=headers)
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise ProviderError(f"Cannot connect to {self.name} backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"{self.name} backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.name} backend timed out after {self._timeout}s") from e
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(f"{self.name} backend returned invalid JSON") from e
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected response format from {self.name} backend")
        return data


# ---------------------------------------------------------------------------
# OpenAI-compatible chat completions
# ---------------------------------------------------------------------------

class OpenAIProvider(_ProviderBase):
    """Chat-completions client with function tools.

    Request:  {"model", "messages", "tools": [{"type": "function", ...}]}
    Response: {"choices": [{"message": {"content", "tool_calls"}}]}
    """

    name = "openai"
    default_url = "https://api.openai.com"

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    @staticmethod
    def _wire_message(msg: Message) -> dict[str, Any]:
        if msg.role == "assistant":
            if msg.raw is not None:
                return msg.raw
            wire: dict[str, Any] = {"role": "assistant", "content": msg.content or None}
            if msg.tool_calls:
                wire["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": safe_tool_name(call.name),
                            "arguments": json.dumps(call.arguments, ensure_ascii=False),
                        },
                    }
                    for call in msg.tool_calls
                ]
            return wire
        if msg.role == "tool":
            return {"role": "tool", "tool_call_id": msg.tool_call_id, "content": msg.content}
        return {"role": "user", "content": msg.content}

    def _build_request(
        self, system: str, transcript: list[Message], tools: list[ToolSpec]
    ) -> tuple[str, dict]:
        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.extend(self._wire_message(m) for m in transcript)
        body: dict[str, Any] = {"messages": messages}
        if self._model:
            body["model"] = self._model
        if tools:
            body["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": safe_tool_name(t.name),
                        "description": t.description,
                        "parameters": t.input_schema,
                    },
                }
                for t in tools
            ]
            body["tool_choice"] = "auto"
        return f"{self._base_url}/v1/chat/completions", body

    def _parse_response(self, data: dict, names: dict[str, str]) -> ProviderTurn:
        choices = data.get("choices")
        if not choices or not isinstance(choices[0].get("message"), dict):
            raise ProviderError("Unexpected response format from OpenAI-compatible backend")
        message = choices[0]["message"]
        text = message.get("content") or ""
        if isinstance(text, list):
            text = "".join(part.get("text", "") for part in text if isinstance(part, dict))

        calls: list[ToolCall] = []
        for i, raw_call in enumerate(message.get("tool_calls") or []):
            function = raw_call.get("function") or {}
            safe = function.get("name", "")
            call = ToolCall(id=raw_call.get("id") or f"call_{i}", name=names.get(safe, safe))
            try:
                arguments = json.loads(function.get("arguments") or "{}")
            except json.JSONDecodeError as e:
                call.parse_error = f"Arguments are not valid JSON: {e}"
            else:
                if isinstance(arguments, dict):
                    call.arguments = arguments
                else:
                    call.parse_error = "Arguments must be a JSON object"
            calls.append(call)

        assistant = Message(role="assistant", content=text, tool_calls=calls, raw=message)
        return ProviderTurn(text=text, tool_calls=calls, transcript_delta=[assistant])

    async def submit(
        self, system: str, transcript: list[Message], tools: list[ToolSpec]
    ) -> ProviderTurn:
        url, body = self._build_request(system, transcript, tools)
        logger.debug("openai submit url=%s messages=%d tools=%d", url, len(body["messages"]), len(tools))
        data = await self._post(url, body, self._headers())
        return self._parse_response(data, {safe_tool_name(t.name): t.name for t in tools})


# ---------------------------------------------------------------------------
# Gemini generateContent
# ---------------------------------------------------------------------------

class GeminiProvider(_ProviderBase):
    """Gemini REST client with function declarations.

    Request:  {"contents", "systemInstruction", "tools": [{"functionDeclarations"}]}
    Response: {"candidates": [{"content": {"role": "model", "parts": [...]}}]}

    Tool results are sent back as one user turn of functionResponse parts,
    grouped per model turn.
    """

    name = "gemini"
    default_url = "https://generativelanguage.googleapis.com"

    def __init__(
        self,
        provider_url: str = "",
        api_key: str = "",
        model: str = "gemini-2.5-flash",
        timeout: float = 120.0,
    ) -> None:
        super().__init__(provider_url, api_key, model or "gemini-2.5-flash", timeout)

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["x-goog-api-key"] = self._api_key
        return headers

    @staticmethod
    def _contents(transcript: list[Message]) -> list[dict[str, Any]]:
        contents: list[dict[str, Any]] = []
        for msg in transcript:
            if msg.role == "assistant":
                if msg.raw is not None:
                    contents.append(msg.raw)
                    continue
                parts: list[dict[str, Any]] = []
                if msg.content:
                    parts.append({"text": msg.content})
                for call in msg.tool_calls:
                    parts.append({"functionCall": {"name": safe_tool_name(call.name), "args": call.arguments}})
                contents.append({"role": "model", "parts": parts})
            elif msg.role == "tool":
                part = {
                    "functionResponse": {
                        "id": msg.tool_call_id,
                        "name": safe_tool_name(msg.name or ""),
                        "response": msg.payload or {},
                    }
                }
                last = contents[-1] if contents else None
                if last and last.get("role") == "user" and "functionResponse" in last["parts"][0]:
                    last["parts"].append(part)
                else:
                    contents.append({"role": "user", "parts": [part]})
            else:
                contents.append({"role": "user", "parts": [{"text": msg.content}]})
        return contents

    def _build_request(
        self, system: str, transcript: list[Message], tools: list[ToolSpec]
    ) -> tuple[str, dict]:
        body: dict[str, Any] = {"contents": self._contents(transcript)}
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}
        if tools:
            body["tools"] = [{
                "functionDeclarations": [
                    {
                        "name": safe_tool_name(t.name),
                        "description": t.description,
                        "parametersJsonSchema": t.input_schema,
                    }
                    for t in tools
                ]
            }]
            body["toolConfig"] = {"functionCallingConfig": {"mode": "AUTO"}}
        return f"{self._base_url}/v1beta/models/{self._model}:generateContent", body

    def _parse_response(self, data: dict, names: dict[str, str]) -> ProviderTurn:
        candidates = data.get("candidates")
        if not candidates or not isinstance(candidates[0].get("content"), dict):
            reason = (data.get("promptFeedback") or {}).get("blockReason")
            detail = f" (blocked: {reason})" if reason else ""
            raise ProviderError(f"Unexpected response format from Gemini backend{detail}")
        content = candidates[0]["content"]
        content.setdefault("role", "model")

        texts: list[str] = []
        calls: list[ToolCall] = []
        for part in content.get("parts") or []:
            if "functionCall" in part:
                fc = part["functionCall"] or {}
                safe = fc.get("name", "")
                call = ToolCall(id=fc.get("id") or f"call_{len(calls)}", name=names.get(safe, safe))
                args = fc.get("args", {})
                if isinstance(args, dict):
                    call.arguments = args
                else:
                    call.parse_error = "Arguments must be an object"
                calls.append(call)
            elif isinstance(part.get("text"), str) and not part.get("thought"):
                texts.append(part["text"])

        text = "".join(texts).strip()
        assistant = Message(role="assistant", content=text, tool_calls=calls, raw=content)
        return ProviderTurn(text=text, tool_calls=calls, transcript_delta=[assistant])

    async def submit(
        self, system: str, transcript: list[Message], tools: list[ToolSpec]
    ) -> ProviderTurn:
        url, body = self._build_request(system, transcript, tools)
        logger.debug("gemini submit model=%s contents=%d tools=%d", self._model, len(body["contents"]), len(tools))
        data = await self._post(url, body, self._headers())
        return self._parse_response(data, {safe_tool_name(t.name): t.name for t in tools})


# ---------------------------------------------------------------------------
# Offline provider
# ---------------------------------------------------------------------------

class EchoProvider(_ProviderBase):
    """Returns the latest user instruction as the answer. No network calls."""

    name = "echo"

    async def submit(
        self, system: str, transcript: list[Message], tools: list[ToolSpec]
    ) -> ProviderTurn:
        text = next((m.content for m in reversed(transcript) if m.role == "user"), "")
        logger.debug("EchoProvider transcript_len=%d", len(transcript))
        return ProviderTurn(text=text, transcript_delta=[Message(role="assistant", content=text)])


def create_provider(settings: Settings) -> ReasoningProvider:
    """Build the provider named in settings."""
    if settings.provider == "gemini":
        return GeminiProvider(
            provider_url=settings.provider_url,
            api_key=settings.api_key,
            model=settings.model,
            timeout=settings.request_timeout,
        )
    if settings.provider == "echo":
        return EchoProvider()
    return OpenAIProvider(
        provider_url=settings.provider_url,
        api_key=settings.api_key,
        model=settings.model,
        timeout=settings.request_timeout,
    )
