"""Reconciliation and persistence of a finished installment.

Reconciler: one extra tool-calling pass over the final text that asks the
reasoner to create missing characters/places and update changed ones, or to
answer "OK". References are reloaded afterwards.

persist_installment: writes every draft place, then every draft character,
and the installment itself last, through the store-write tools. A failed
entity write therefore never leaves the installment stored. A create
rejected as a duplicate is retried once as the matching update; any other
error propagates.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fantasy_diary.models import FinalizeResult
from fantasy_diary.tool_client import ToolCallError, ToolClient

if TYPE_CHECKING:
    from fantasy_diary.references import ReferenceLoader

    from .phases import PhaseController

logger = logging.getLogger(__name__)

RECONCILE_SENTINEL = "OK"

_DUPLICATE_MARKERS = ("duplicate", "already exists")


class Reconciler:
    def __init__(self, controller: PhaseController, loader: ReferenceLoader) -> None:
        self._controller = controller
        self._loader = loader

    async def run(self) -> bool:
        """Run the pass; True when the reasoner reported nothing to change."""
        ctx = self._controller.ctx
        answer = await self._controller.converse("reconcile")
        unchanged = answer.strip().strip(".").upper() == RECONCILE_SENTINEL
        if unchanged:
            logger.info("[%s] Reconcile: store already up to date", ctx.run_id)
        else:
            logger.info("[%s] Reconcile: %s", ctx.run_id, answer.strip()[:160])
        ctx.references = await self._loader.load()
        return unchanged


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

def is_duplicate_error(error: Exception | str) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _DUPLICATE_MARKERS)


async def create_or_update(tools: ToolClient, entity: str, record: dict[str, Any]) -> Any:
    """`{entity}.create`, falling back to `{entity}.update` on a duplicate."""
    try:
        return await tools.call(f"{entity}.create", record)
    except ToolCallError as e:
        if not is_duplicate_error(e):
            raise
        logger.info("%s %s already exists, updating", entity, record.get("name") or record.get("id"))
        return await tools.call(f"{entity}.update", record)


async def persist_installment(
    tools: ToolClient,
    installment_id: str,
    result: FinalizeResult,
    created_at: str,
) -> None:
    for place in result.places:
        record = place.provided()
        record["last_mentioned_installment_id"] = installment_id
        await create_or_update(tools, "places", record)
    for character in result.characters:
        record = character.provided()
        record["last_mentioned_installment_id"] = installment_id
        await create_or_update(tools, "characters", record)
    await create_or_update(tools, "installments", {
        "id": installment_id,
        "content": result.content,
        "summary": result.summary,
        "characters": [c.name for c in result.characters if c.name],
        "places": [p.name for p in result.places if p.name],
        "created_at": created_at,
    })
    logger.info(
        "[%s] Persisted installment with %d characters, %d places",
        installment_id, len(result.characters), len(result.places),
    )
