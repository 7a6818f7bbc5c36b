"""Read-only store tools: list/get installments, characters, places."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from backend.storage import EntityNotFoundError, Storage
from fantasy_diary.rpc import ToolDefinition


class InstallmentListArgs(BaseModel):
    limit: int = Field(10, ge=1, le=100, description="Newest first")


class InstallmentGetArgs(BaseModel):
    id: str = Field(min_length=1)


class EntityListArgs(BaseModel):
    name: str | None = Field(None, description="Case-insensitive substring filter")
    limit: int = Field(50, ge=1, le=500)


class EntityGetArgs(BaseModel):
    id: str | None = None
    name: str | None = None

    @model_validator(mode="after")
    def _needs_key(self):
        if not self.id and not self.name:
            raise ValueError("id or name is required")
        return self


async def list_installments(args: InstallmentListArgs, storage: Storage) -> dict:
    records = storage.installments.list(limit=args.limit)
    return {"installments": [r.model_dump() for r in records], "count": len(records)}


async def get_installment(args: InstallmentGetArgs, storage: Storage) -> dict:
    record = storage.installments.get(id=args.id)
    if record is None:
        raise EntityNotFoundError(f"Installment {args.id} not found")
    return record.model_dump()


async def list_characters(args: EntityListArgs, storage: Storage) -> dict:
    records = storage.characters.list(name=args.name, limit=args.limit)
    return {"characters": [r.model_dump() for r in records], "count": len(records)}


async def get_character(args: EntityGetArgs, storage: Storage) -> dict:
    record = storage.characters.get(id=args.id, name=args.name)
    if record is None:
        raise EntityNotFoundError(f"Character {args.id or args.name!r} not found")
    return record.model_dump()


async def list_places(args: EntityListArgs, storage: Storage) -> dict:
    records = storage.places.list(name=args.name, limit=args.limit)
    return {"places": [r.model_dump() for r in records], "count": len(records)}


async def get_place(args: EntityGetArgs, storage: Storage) -> dict:
    record = storage.places.get(id=args.id, name=args.name)
    if record is None:
        raise EntityNotFoundError(f"Place {args.id or args.name!r} not found")
    return record.model_dump()


TOOLS: list[ToolDefinition] = [
    ToolDefinition("installments.list", "List recent installments, newest first.",
                   InstallmentListArgs, list_installments),
    ToolDefinition("installments.get", "Fetch one installment by id (YYYYMMDDHHmm).",
                   InstallmentGetArgs, get_installment),
    ToolDefinition("characters.list", "List known characters, optionally filtered by name.",
                   EntityListArgs, list_characters),
    ToolDefinition("characters.get", "Fetch one character by id or exact name.",
                   EntityGetArgs, get_character),
    ToolDefinition("places.list", "List known places, optionally filtered by name.",
                   EntityListArgs, list_places),
    ToolDefinition("places.get", "Fetch one place by id or exact name.",
                   EntityGetArgs, get_place),
]
