"""Tool-calling loop — one conversation with the reasoning provider.

Each iteration:
  1. Submit system instruction + transcript + tool catalog.
  2. No tool calls in the reply → return its text.
  3. Otherwise run every requested call (as one concurrent batch when
     `parallel` is set), append one tool-result turn per call in request
     order, and record entity side effects in the same order.

Only successful calls reach the draft. The exception is a create refused
because the entity already exists: its arguments are recorded so the
persistence step can apply them as an update.

A failing tool call is answered with {"error": message} and the loop goes
on. Only running out of iterations is fatal.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fantasy_diary.drafts import SideEffectRecorder
from fantasy_diary.models import Message, ToolCall, ToolCallOutcome, ToolSpec
from fantasy_diary.provider import ReasoningProvider
from fantasy_diary.tool_client import ToolClient, ToolError

from .reconciler import is_duplicate_error

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 20


class MaxIterationsError(RuntimeError):
    """The provider kept requesting tools past the iteration cap."""


def normalize_payload(result: Any) -> dict[str, Any]:
    """Tool results enter the transcript as keyed records."""
    if isinstance(result, dict):
        return result
    return {"result": result}


def _records_side_effect(outcome: ToolCallOutcome) -> bool:
    if outcome.ok:
        return True
    return outcome.call.name.endswith(".create") and is_duplicate_error(outcome.payload.get("error", ""))


def _preview(value: Any, limit: int = 160) -> str:
    text = str(value)
    return text if len(text) <= limit else text[:limit] + "…"


async def _execute(tools: ToolClient, call: ToolCall) -> ToolCallOutcome:
    if call.parse_error:
        logger.warning("tool %s: unusable arguments: %s", call.name, call.parse_error)
        return ToolCallOutcome(call=call, payload={"error": call.parse_error}, ok=False)
    try:
        result = await tools.call(call.name, call.arguments)
    except ToolError as e:
        logger.warning("tool %s failed: %s", call.name, e)
        return ToolCallOutcome(call=call, payload={"error": str(e)}, ok=False)
    logger.debug("tool %s ok: %s", call.name, _preview(result))
    return ToolCallOutcome(call=call, payload=normalize_payload(result))


async def run_tool_loop(
    provider: ReasoningProvider,
    tools: ToolClient,
    *,
    system: str,
    instruction: str,
    catalog: list[ToolSpec],
    recorder: SideEffectRecorder | None = None,
    max_iterations: int = MAX_ITERATIONS,
    parallel: bool = True,
    label: str = "loop",
) -> str:
    """Drive the provider until it answers with text; return that text."""
    transcript: list[Message] = [Message(role="user", content=instruction)]

    for iteration in range(1, max_iterations + 1):
        turn = await provider.submit(system, transcript, catalog)
        transcript.extend(turn.transcript_delta)

        if not turn.tool_calls:
            logger.debug("%s: finished after %d iteration(s)", label, iteration)
            return turn.text

        logger.debug(
            "%s: iteration %d requests %s",
            label, iteration, ", ".join(c.name for c in turn.tool_calls),
        )
        if parallel:
            outcomes = list(await asyncio.gather(
                *(_execute(tools, call) for call in turn.tool_calls)
            ))
        else:
            outcomes = [await _execute(tools, call) for call in turn.tool_calls]

        transcript = provider.append_tool_results(transcript, outcomes)

        if recorder is not None:
            for outcome in outcomes:
                if recorder.tracks(outcome.call.name) and _records_side_effect(outcome):
                    recorder.record(
                        outcome.call.name,
                        outcome.call.arguments,
                        outcome.payload if outcome.ok else None,
                    )

    raise MaxIterationsError(f"Max iterations ({max_iterations}) reached in {label}")
