"""Installment generation and read endpoints."""

import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import ValidationError

from fantasy_diary.config import load_settings
from fantasy_diary.pipeline import generate_installment, installment_id_for, parse_current_time
from fantasy_diary.provider import EchoProvider, create_provider
from fantasy_diary.tool_client import HttpTransport, ToolClient

from .models import GenerateBody

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/installments")
async def list_installments(request: Request, limit: int = 20):
    """List installments, newest first."""
    records = request.app.state.storage.installments.list(limit=limit)
    return [r.model_dump() for r in records]


@router.get("/installments/{installment_id}")
async def get_installment(installment_id: str, request: Request):
    """Get a single installment by id."""
    record = request.app.state.storage.installments.get(id=installment_id)
    if record is None:
        raise HTTPException(404, "Installment not found")
    return record.model_dump()


@router.post("/installments")
async def generate(body: GenerateBody, request: Request):
    """Generate the installment for currentTime.

    dryRun uses the echo provider and skips persistence. Only one run per
    installment id may be in flight.
    """
    state = request.app.state
    try:
        settings = load_settings(state.storage.get_config())
    except ValidationError as e:
        raise HTTPException(400, f"Invalid settings: {e.error_count()} error(s)")

    try:
        run_key = installment_id_for(parse_current_time(body.currentTime))
    except ValueError:
        run_key = None  # generate_installment reports the bad timestamp
    if run_key and run_key in state.running:
        raise HTTPException(409, f"Installment {run_key} is already being generated")

    provider = EchoProvider() if body.dryRun else create_provider(settings)
    tools = ToolClient(HttpTransport(settings.tool_base_url)) if settings.tool_base_url else state.tools

    if run_key:
        state.running.add(run_key)
    try:
        result = await generate_installment(
            body.currentTime,
            provider=provider,
            tools=tools,
            settings=settings,
            persist=not body.dryRun,
        )
    finally:
        state.running.discard(run_key)
    return result.model_dump(by_alias=True)
