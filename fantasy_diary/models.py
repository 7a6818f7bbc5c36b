"""Domain models shared by the pipeline, the tool services and the store.

Canonical entities (Character, Place, Installment) are what the store keeps.
Patches (CharacterPatch, PlacePatch) are what a run asserts about the world:
every field optional, built once by validation, merged by `merged_onto`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Phase = Literal["planning", "prewriting", "drafting", "revision", "finalize"]

PHASE_ORDER: tuple[Phase, ...] = (
    "planning",
    "prewriting",
    "drafting",
    "revision",
    "finalize",
)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


class _Identified(BaseModel):
    """Id-or-name identity shared by every canonical entity."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    name: str = ""

    @model_validator(mode="after")
    def _require_identity(self):
        if not self.id and not self.name:
            raise ValueError("id or name must be non-empty")
        return self


# ---------------------------------------------------------------------------
# Canonical entities
# ---------------------------------------------------------------------------

class Character(_Identified):
    """A recurring person in the diary."""

    personality: str = ""
    background: str = ""
    appearance: str = ""
    current_place: str = ""
    relationships: dict[str, Any] = Field(default_factory=dict)
    major_events: list[str] = Field(default_factory=list)
    character_traits: list[str] = Field(default_factory=list)
    current_status: str = ""
    first_seen_at: str | None = None
    updated_at: str | None = None
    last_mentioned_installment_id: str | None = None


class Place(_Identified):
    """A location the story has visited."""

    current_situation: str = ""
    latitude: float | None = None
    longitude: float | None = None
    last_weather_condition: str = ""
    updated_at: str | None = None
    last_mentioned_installment_id: str | None = None


class Installment(BaseModel):
    """One published diary entry."""

    id: str
    content: str
    summary: str = ""
    characters: list[str] = Field(default_factory=list)
    places: list[str] = Field(default_factory=list)
    created_at: str | None = None


# ---------------------------------------------------------------------------
# Partial updates
# ---------------------------------------------------------------------------

class _Patch(BaseModel):
    model_config = ConfigDict(extra="ignore")

    def identity(self) -> tuple[str, str]:
        return (getattr(self, "id", None) or "", getattr(self, "name", None) or "")

    def provided(self) -> dict[str, Any]:
        """Fields carrying a non-empty value."""
        return {k: v for k, v in self.model_dump().items() if not _is_empty(v)}

    def merged_onto(self, base):
        """Shallow-merge onto `base`; empty values here never erase base values."""
        return base.model_copy(update=self.provided())


class CharacterPatch(_Patch):
    id: str | None = None
    name: str | None = None
    personality: str | None = None
    background: str | None = None
    appearance: str | None = None
    current_place: str | None = None
    relationships: dict[str, Any] | None = None
    major_events: list[str] | None = None
    character_traits: list[str] | None = None
    current_status: str | None = None
    first_seen_at: str | None = None
    updated_at: str | None = None
    last_mentioned_installment_id: str | None = None


class PlacePatch(_Patch):
    id: str | None = None
    name: str | None = None
    current_situation: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    last_weather_condition: str | None = None
    updated_at: str | None = None
    last_mentioned_installment_id: str | None = None


class InstallmentPatch(_Patch):
    content: str | None = None
    summary: str | None = None
    characters: list[str] | None = None
    places: list[str] | None = None


# ---------------------------------------------------------------------------
# Run context
# ---------------------------------------------------------------------------

class PreviousInstallment(BaseModel):
    id: str
    content: str
    created_at: str | None = None


class References(BaseModel):
    characters: list[Character] = Field(default_factory=list)
    places: list[Place] = Field(default_factory=list)
    loaded: bool = False


class Draft(BaseModel):
    plan: str | None = None
    prewriting: str | None = None
    content: str | None = None
    summary: str | None = None
    characters: list[CharacterPatch] = Field(default_factory=list)
    places: list[PlacePatch] = Field(default_factory=list)


class RunContext(BaseModel):
    """Mutable state of a single installment run."""

    run_id: str
    current_time: datetime
    previous: PreviousInstallment | None = None
    references: References = Field(default_factory=References)
    draft: Draft = Field(default_factory=Draft)
    phase: Phase | None = None


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class ToolSpec(BaseModel):
    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict)


class ToolCall(BaseModel):
    """A tool invocation requested by the reasoning provider."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    parse_error: str | None = None  # provider sent arguments we could not decode


class ToolCallOutcome(BaseModel):
    call: ToolCall
    payload: dict[str, Any]
    ok: bool = True


class Message(BaseModel):
    """One transcript turn. `raw` keeps the provider-native assistant turn."""

    role: Literal["user", "assistant", "tool"]
    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None
    payload: dict[str, Any] | None = None
    raw: dict[str, Any] | None = None


class ProviderTurn(BaseModel):
    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    transcript_delta: list[Message] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class FinalizeResult(BaseModel):
    content: str
    summary: str
    characters: list[CharacterPatch] = Field(default_factory=list)
    places: list[PlacePatch] = Field(default_factory=list)


class RunStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    word_count: int = Field(0, alias="wordCount")
    characters_added: int = Field(0, alias="charactersAdded")
    places_added: int = Field(0, alias="placesAdded")
    execution_time_ms: int = Field(0, alias="executionTimeMs")


class InstallmentResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    installment_id: str = Field("", alias="installmentId")
    content: str = ""
    stats: RunStats = Field(default_factory=RunStats)
    error: str | None = None
