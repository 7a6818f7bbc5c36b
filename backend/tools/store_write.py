"""Mutating store tools: create/update/delete installments, characters, places.

create refuses a taken id or name with an "... already exists" error;
callers that want upsert semantics fall back to update on that message.
update matches by id first, then by exact name, and returns the merged record.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from backend.storage import Storage
from fantasy_diary.models import CharacterPatch, InstallmentPatch, PlacePatch
from fantasy_diary.rpc import ToolDefinition


class _NeedsKey(BaseModel):
    @model_validator(mode="after")
    def _needs_key(self):
        if not self.id and not self.name:
            raise ValueError("id or name is required")
        return self


class CharacterCreateArgs(CharacterPatch):
    name: str = Field(min_length=1)


class CharacterUpdateArgs(CharacterPatch, _NeedsKey):
    pass


class PlaceCreateArgs(PlacePatch):
    name: str = Field(min_length=1)
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)


class PlaceUpdateArgs(PlacePatch, _NeedsKey):
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)


class EntityDeleteArgs(_NeedsKey):
    id: str | None = None
    name: str | None = None


class InstallmentCreateArgs(BaseModel):
    id: str = Field(pattern=r"^\d{12}$", description="YYYYMMDDHHmm")
    content: str = Field(min_length=1)
    summary: str = ""
    characters: list[str] = Field(default_factory=list)
    places: list[str] = Field(default_factory=list)
    created_at: str | None = None


class InstallmentUpdateArgs(InstallmentPatch):
    id: str = Field(pattern=r"^\d{12}$")


class InstallmentDeleteArgs(BaseModel):
    id: str = Field(min_length=1)


# ── installments ─────────────────────────────────────────


async def create_installment(args: InstallmentCreateArgs, storage: Storage) -> dict:
    return storage.installments.create(args.model_dump()).model_dump()


async def update_installment(args: InstallmentUpdateArgs, storage: Storage) -> dict:
    return storage.installments.update(args, id=args.id).model_dump()


async def delete_installment(args: InstallmentDeleteArgs, storage: Storage) -> dict:
    return {"deleted": storage.installments.delete(id=args.id).id}


# ── characters ───────────────────────────────────────────


async def create_character(args: CharacterCreateArgs, storage: Storage) -> dict:
    return storage.characters.create(args.provided()).model_dump()


async def update_character(args: CharacterUpdateArgs, storage: Storage) -> dict:
    return storage.characters.update(args, id=args.id, name=args.name).model_dump()


async def delete_character(args: EntityDeleteArgs, storage: Storage) -> dict:
    return {"deleted": storage.characters.delete(id=args.id, name=args.name).id}


# ── places ───────────────────────────────────────────────


async def create_place(args: PlaceCreateArgs, storage: Storage) -> dict:
    return storage.places.create(args.provided()).model_dump()


async def update_place(args: PlaceUpdateArgs, storage: Storage) -> dict:
    return storage.places.update(args, id=args.id, name=args.name).model_dump()


async def delete_place(args: EntityDeleteArgs, storage: Storage) -> dict:
    return {"deleted": storage.places.delete(id=args.id, name=args.name).id}


TOOLS: list[ToolDefinition] = [
    ToolDefinition("installments.create", "Store a new installment.",
                   InstallmentCreateArgs, create_installment),
    ToolDefinition("installments.update", "Update fields of an existing installment.",
                   InstallmentUpdateArgs, update_installment),
    ToolDefinition("installments.delete", "Delete an installment by id.",
                   InstallmentDeleteArgs, delete_installment),
    ToolDefinition("characters.create", "Register a new character. Fails if the name already exists.",
                   CharacterCreateArgs, create_character),
    ToolDefinition("characters.update", "Update a character found by id or exact name; omitted fields are kept.",
                   CharacterUpdateArgs, update_character),
    ToolDefinition("characters.delete", "Delete a character by id or exact name.",
                   EntityDeleteArgs, delete_character),
    ToolDefinition("places.create", "Register a new place. Fails if the name already exists.",
                   PlaceCreateArgs, create_place),
    ToolDefinition("places.update", "Update a place found by id or exact name; omitted fields are kept.",
                   PlaceUpdateArgs, update_place),
    ToolDefinition("places.delete", "Delete a place by id or exact name.",
                   EntityDeleteArgs, delete_place),
]
