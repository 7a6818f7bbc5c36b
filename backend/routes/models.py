"""Pydantic request models for API endpoints."""

from pydantic import BaseModel, Field


class GenerateBody(BaseModel):
    currentTime: str = Field(min_length=1)
    dryRun: bool = False
