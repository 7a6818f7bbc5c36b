"""Health check and settings endpoints."""

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from fantasy_diary.config import load_settings

router = APIRouter()


def _masked(config: dict) -> dict:
    if config.get("api_key"):
        config = {**config, "api_key": "********"}
    return config


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(request: Request):
    """Get app settings. The api key is masked."""
    return _masked(request.app.state.storage.get_config())


@router.patch("/settings")
async def update_settings(body: dict, request: Request):
    """Update app settings (partial merge). Invalid values are rejected."""
    storage = request.app.state.storage
    try:
        load_settings({**storage.get_config(), **body})
    except ValidationError as e:
        raise HTTPException(400, e.errors(include_url=False, include_context=False))
    return _masked(storage.update_config(body))
