"""Per-run draft store and the tool-call side-effect recorder.

Tool results are external payloads. They are decoded into CharacterPatch /
PlacePatch through the total functions below, which keep the fields that
validate and drop the rest instead of inspecting shapes ad hoc.

Draft upsert rule:
  1. Match an existing entry by id when the patch carries one.
  2. Otherwise match by exact name (entries with a different id never match).
  3. Matched → shallow merge, non-empty new values win.
     Unmatched → append.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from fantasy_diary.models import CharacterPatch, Draft, PlacePatch

logger = logging.getLogger(__name__)

P = TypeVar("P", CharacterPatch, PlacePatch)
M = TypeVar("M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def decode_lenient(model: type[M], raw: Mapping[str, Any]) -> M:
    """Validate `raw` into `model`, dropping every field that fails."""
    data = {k: v for k, v in raw.items() if k in model.model_fields and v is not None}
    if isinstance(data.get("id"), int) and not isinstance(data["id"], bool):
        data["id"] = str(data["id"])
    for _ in range(len(model.model_fields) + 1):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            bad = {err["loc"][0] for err in e.errors() if err["loc"]} & data.keys()
            if not bad:
                break
            logger.debug("dropping invalid %s fields: %s", model.__name__, sorted(bad))
            for key in bad:
                del data[key]
    return model()


def _decode_entity(model: type[P], raw: Any) -> P | None:
    if not isinstance(raw, Mapping):
        return None
    patch = decode_lenient(model, raw)
    if not any(patch.identity()):
        return None
    return patch


def decode_character(raw: Any) -> CharacterPatch | None:
    """Map a payload onto CharacterPatch; None when it has no id or name."""
    return _decode_entity(CharacterPatch, raw)


def decode_place(raw: Any) -> PlacePatch | None:
    """Map a payload onto PlacePatch; None when it has no id or name."""
    return _decode_entity(PlacePatch, raw)


def decode_weather_place(arguments: Mapping[str, Any], result: Any) -> PlacePatch | None:
    """Turn a weather lookup into a place observation.

    Only lookups made on behalf of a named place (`place_name`) produce one.
    """
    result = result if isinstance(result, Mapping) else {}
    name = arguments.get("place_name") or result.get("place_name")
    if not isinstance(name, str) or not name.strip():
        return None
    request = result.get("request") if isinstance(result.get("request"), Mapping) else {}
    current = result.get("current") if isinstance(result.get("current"), Mapping) else {}
    raw = {
        "name": name.strip(),
        "latitude": arguments.get("latitude", request.get("latitude")),
        "longitude": arguments.get("longitude", request.get("longitude")),
        "last_weather_condition": current.get("weatherDescription"),
    }
    return decode_place(raw)


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------

def _matches(entry: P, patch: P) -> bool:
    entry_id, entry_name = entry.identity()
    patch_id, patch_name = patch.identity()
    if patch_id and entry_id:
        return patch_id == entry_id
    return bool(patch_name) and entry_name == patch_name


def upsert(entries: list[P], patch: P) -> P:
    """Merge `patch` into `entries` in place and return the stored entry."""
    patch_id = patch.identity()[0]
    if patch_id:
        for i, entry in enumerate(entries):
            if entry.identity()[0] == patch_id:
                entries[i] = patch.merged_onto(entry)
                return entries[i]
    for i, entry in enumerate(entries):
        if _matches(entry, patch):
            entries[i] = patch.merged_onto(entry)
            return entries[i]
    entries.append(patch)
    return patch


# ---------------------------------------------------------------------------
# Side effects
# ---------------------------------------------------------------------------

def _merge_payload(arguments: Mapping[str, Any], result: Any) -> dict[str, Any]:
    merged = dict(arguments)
    if isinstance(result, Mapping):
        merged.update(result)
    return merged


_MUTATIONS: dict[str, tuple[str, Callable[[Any], Any]]] = {
    "characters.create": ("characters", decode_character),
    "characters.update": ("characters", decode_character),
    "places.create": ("places", decode_place),
    "places.update": ("places", decode_place),
}

_ENRICHMENTS: dict[str, Callable[[Mapping[str, Any], Any], PlacePatch | None]] = {
    "weather.openMeteo.lookup": decode_weather_place,
}


class SideEffectRecorder:
    """Folds mutation and enrichment tool calls into a run's Draft."""

    def __init__(self, draft: Draft) -> None:
        self._draft = draft

    @staticmethod
    def tracks(name: str) -> bool:
        return name in _MUTATIONS or name in _ENRICHMENTS

    def record(self, name: str, arguments: Mapping[str, Any], result: Any = None):
        """Record one call. Result fields win over argument fields."""
        if name in _MUTATIONS:
            bucket, decode = _MUTATIONS[name]
            patch = decode(_merge_payload(arguments, result))
        elif name in _ENRICHMENTS:
            bucket = "places"
            patch = _ENRICHMENTS[name](arguments, result)
        else:
            return None

        if patch is None:
            logger.debug("side effect of %s carried no identity, skipped", name)
            return None
        stored = upsert(getattr(self._draft, bucket), patch)
        logger.debug("draft %s upsert via %s: %s", bucket, name, stored.identity())
        return stored
