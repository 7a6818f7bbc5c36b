"""Run settings.

Settings are stored alongside the data (see backend.storage.config) and
validated into this model before a run. Secrets may come from the
environment instead: LLM_API_KEY overrides an empty stored api_key.
"""

from __future__ import annotations

import os
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from fantasy_diary.models import PHASE_ORDER

ProviderName = Literal["openai", "gemini", "echo"]


class Settings(BaseModel):
    provider: ProviderName = "openai"
    provider_url: str = ""  # empty = the provider's public endpoint
    api_key: str = ""
    model: str = ""
    request_timeout: float = 120.0
    max_iterations: int = Field(20, ge=1)
    run_timeout: float = Field(300.0, gt=0)
    parallel_tool_calls: bool = True
    tool_base_url: str = ""  # empty = call the in-process routers
    phase_templates: dict[str, str] = Field(default_factory=dict)

    @field_validator("phase_templates")
    @classmethod
    def _known_phases(cls, value: dict[str, str]) -> dict[str, str]:
        unknown = set(value) - set(PHASE_ORDER) - {"system", "reconcile"}
        if unknown:
            raise ValueError(f"Unknown phase template(s): {', '.join(sorted(unknown))}")
        return value


def load_settings(stored: dict[str, Any] | None = None) -> Settings:
    """Validate stored config into Settings, filling secrets from the environment."""
    data = dict(stored or {})
    if not data.get("api_key"):
        data["api_key"] = os.getenv("LLM_API_KEY", "")
    if not data.get("tool_base_url"):
        data["tool_base_url"] = os.getenv("TOOL_BASE_URL", "")
    return Settings.model_validate(data)
