"""A JSON list of records with id/name lookup."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from .core import DuplicateEntityError, EntityNotFoundError, now_iso, read_json, write_json

M = TypeVar("M", bound=BaseModel)


class RecordTable(Generic[M]):
    """All records of one kind, stored as a single JSON array.

    Records are identified by `id`; when `named` is set, `name` is a second
    unique key and lookups accept either.
    """

    def __init__(
        self,
        path: Path,
        model: type[M],
        *,
        label: str,
        named: bool = True,
        newest_first: bool = False,
    ) -> None:
        self._path = path
        self._model = model
        self._label = label
        self._named = named
        self._newest_first = newest_first

    def _load(self) -> list[M]:
        return [self._model.model_validate(r) for r in read_json(self._path, [])]

    def _save(self, records: list[M]) -> None:
        write_json(self._path, [r.model_dump() for r in records])

    def _stamp(self, data: dict[str, Any], creating: bool) -> None:
        fields = self._model.model_fields
        now = now_iso()
        if "updated_at" in fields:
            data["updated_at"] = now
        if creating and "first_seen_at" in fields and not data.get("first_seen_at"):
            data["first_seen_at"] = now
        if creating and "created_at" in fields and not data.get("created_at"):
            data["created_at"] = now

    def _index(self, records: list[M], id: str | None, name: str | None) -> int:
        if id:
            for i, r in enumerate(records):
                if r.id == id:
                    return i
        if name and self._named:
            for i, r in enumerate(records):
                if r.name == name:
                    return i
        return -1

    # ------------------------------------------------------------------

    def list(self, name: str | None = None, limit: int | None = None) -> list[M]:
        """Records sorted by name (or newest id first), optionally filtered."""
        records = self._load()
        if self._newest_first:
            records.sort(key=lambda r: r.id, reverse=True)
        elif self._named:
            records.sort(key=lambda r: r.name.lower())
        if name and self._named:
            needle = name.lower()
            records = [r for r in records if needle in r.name.lower()]
        return records[:limit] if limit else records

    def get(self, id: str | None = None, name: str | None = None) -> M | None:
        records = self._load()
        i = self._index(records, id, name)
        return records[i] if i >= 0 else None

    def create(self, data: dict[str, Any]) -> M:
        data = {k: v for k, v in data.items() if v is not None}
        data.setdefault("id", uuid.uuid4().hex)
        self._stamp(data, creating=True)
        record = self._model.model_validate(data)

        records = self._load()
        if any(r.id == record.id for r in records):
            raise DuplicateEntityError(f"{self._label} {record.id} already exists")
        if self._named and any(r.name == record.name for r in records):
            raise DuplicateEntityError(f"{self._label} named {record.name!r} already exists")
        records.append(record)
        self._save(records)
        return record

    def update(self, patch: Any, id: str | None = None, name: str | None = None) -> M:
        """Merge a partial update (a *Patch model) onto the matching record."""
        records = self._load()
        i = self._index(records, id, name)
        if i < 0:
            raise EntityNotFoundError(f"{self._label} {id or name!r} not found")
        merged = patch.merged_onto(records[i]).model_dump()
        merged["id"] = records[i].id
        if self._named and any(
            j != i and r.name == merged["name"] for j, r in enumerate(records)
        ):
            raise DuplicateEntityError(f"{self._label} named {merged['name']!r} already exists")
        self._stamp(merged, creating=False)
        records[i] = self._model.model_validate(merged)
        self._save(records)
        return records[i]

    def delete(self, id: str | None = None, name: str | None = None) -> M:
        records = self._load()
        i = self._index(records, id, name)
        if i < 0:
            raise EntityNotFoundError(f"{self._label} {id or name!r} not found")
        removed = records.pop(i)
        self._save(records)
        return removed
