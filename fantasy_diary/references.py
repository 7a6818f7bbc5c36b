"""Reference loader — the canonical snapshot the reasoner is grounded on."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from fantasy_diary.drafts import decode_lenient
from fantasy_diary.models import Character, Place, PreviousInstallment, References
from fantasy_diary.tool_client import ToolClient

logger = logging.getLogger(__name__)

REFERENCE_LIMIT = 200


def _records(payload: Any, key: str) -> list[dict]:
    if isinstance(payload, dict):
        payload = payload.get(key, [])
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


def _entities(model, payload: Any, key: str) -> list:
    entities = []
    for record in _records(payload, key):
        if not (record.get("id") or record.get("name")):
            continue
        try:
            entities.append(decode_lenient(model, record))
        except ValidationError:
            logger.warning("skipping unreadable %s record %r", key, record.get("id") or record.get("name"))
    return entities


class ReferenceLoader:
    """Fetches characters and places through the store-read tools."""

    def __init__(self, tools: ToolClient, limit: int = REFERENCE_LIMIT) -> None:
        self._tools = tools
        self._limit = limit

    async def load(self) -> References:
        """Fetch both snapshots concurrently."""
        characters, places = await asyncio.gather(
            self._tools.call("characters.list", {"limit": self._limit}),
            self._tools.call("places.list", {"limit": self._limit}),
        )
        refs = References(
            characters=_entities(Character, characters, "characters"),
            places=_entities(Place, places, "places"),
            loaded=True,
        )
        logger.debug("references: %d characters, %d places", len(refs.characters), len(refs.places))
        return refs

    async def previous_installment(self) -> PreviousInstallment | None:
        payload = await self._tools.call("installments.list", {"limit": 1})
        records = _records(payload, "installments")
        if not records:
            return None
        latest = records[0]
        return PreviousInstallment(
            id=str(latest.get("id", "")),
            content=latest.get("content", "") or "",
            created_at=latest.get("created_at"),
        )
