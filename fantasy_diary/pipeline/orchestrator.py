"""Run trigger — generates one installment end to end.

    generate_installment(current_time)
      1. Parse the timestamp; derive installment id YYYYMMDDHHmm (UTC).
      2. Fetch the previous installment and the tool catalog.
      3. Run every phase through the PhaseController.
      4. Persist places, characters, then the installment (duplicate → update).

The whole run is bounded by settings.run_timeout. Failures never raise:
they come back as InstallmentResult(success=False, error=...). Only the
iteration cap and the run timeout report elapsed time; other failures
carry zeroed stats.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone

from fantasy_diary.config import Settings
from fantasy_diary.models import FinalizeResult, InstallmentResult, RunContext, RunStats
from fantasy_diary.provider import ReasoningProvider
from fantasy_diary.references import ReferenceLoader
from fantasy_diary.tool_client import ToolClient

from .loop import MaxIterationsError
from .phases import PhaseController
from .reconciler import persist_installment

logger = logging.getLogger(__name__)

INVALID_TIME_ERROR = "Invalid currentTime format"


def parse_current_time(value: str | datetime) -> datetime:
    """Return an aware UTC datetime. Naive input is taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(INVALID_TIME_ERROR)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def installment_id_for(current_time: datetime) -> str:
    return current_time.strftime("%Y%m%d%H%M")


async def _run(
    run_id: str,
    current_time: datetime,
    *,
    provider: ReasoningProvider,
    tools: ToolClient,
    settings: Settings,
    persist: bool,
) -> FinalizeResult:
    ctx = RunContext(run_id=run_id, current_time=current_time)
    loader = ReferenceLoader(tools)
    ctx.previous = await loader.previous_installment()
    catalog = await tools.list_tools()

    controller = PhaseController(
        ctx,
        provider=provider,
        tools=tools,
        catalog=catalog,
        settings=settings,
        loader=loader,
    )
    result = await controller.run()
    if persist:
        await persist_installment(tools, run_id, result, created_at=current_time.isoformat())
    return result


async def generate_installment(
    current_time: str | datetime,
    *,
    provider: ReasoningProvider,
    tools: ToolClient,
    settings: Settings | None = None,
    persist: bool = True,
) -> InstallmentResult:
    """Generate (and by default persist) the installment for `current_time`."""
    settings = settings or Settings()
    started = time.monotonic()

    def elapsed_ms() -> int:
        return int((time.monotonic() - started) * 1000)

    try:
        parsed = parse_current_time(current_time)
    except (TypeError, ValueError):
        return InstallmentResult(success=False, error=INVALID_TIME_ERROR)

    installment_id = installment_id_for(parsed)
    logger.info("[%s] Generating installment for %s", installment_id, parsed.isoformat())

    try:
        result = await asyncio.wait_for(
            _run(
                installment_id,
                parsed,
                provider=provider,
                tools=tools,
                settings=settings,
                persist=persist,
            ),
            timeout=settings.run_timeout,
        )
    except asyncio.TimeoutError:
        logger.error("[%s] Run timed out after %ss", installment_id, settings.run_timeout)
        return InstallmentResult(
            success=False,
            installment_id=installment_id,
            stats=RunStats(execution_time_ms=elapsed_ms()),
            error=f"Run timed out after {settings.run_timeout}s",
        )
    except MaxIterationsError as e:
        logger.error("[%s] %s", installment_id, e)
        return InstallmentResult(
            success=False,
            installment_id=installment_id,
            stats=RunStats(execution_time_ms=elapsed_ms()),
            error=str(e),
        )
    except Exception as e:
        logger.exception("[%s] Run failed", installment_id)
        return InstallmentResult(
            success=False,
            installment_id=installment_id,
            error=str(e) or type(e).__name__,
        )

    stats = RunStats(
        word_count=len(result.content),  # counted in characters
        characters_added=len(result.characters),
        places_added=len(result.places),
        execution_time_ms=elapsed_ms(),
    )
    logger.info(
        "[%s] Done in %dms: %d chars, %d characters, %d places",
        installment_id, stats.execution_time_ms, stats.word_count,
        stats.characters_added, stats.places_added,
    )
    return InstallmentResult(
        success=True,
        installment_id=installment_id,
        content=result.content,
        stats=stats,
    )
