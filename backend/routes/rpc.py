"""Tool RPC endpoint — one URL per tool category."""

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from fantasy_diary.rpc import INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND

router = APIRouter()

_STATUS_BY_CODE = {
    INVALID_REQUEST: 400,
    INVALID_PARAMS: 400,
    METHOD_NOT_FOUND: 404,
}


@router.post("/rpc/{category}")
async def call_tools(category: str, request: Request):
    """Answer a tools/list or tools/call envelope for one category."""
    tool_router = request.app.state.routers.get(category)
    if tool_router is None:
        raise HTTPException(404, f"Unknown tool category: {category}")
    reply = await tool_router.handle_raw(await request.body())
    status = 200
    if "error" in reply:
        status = _STATUS_BY_CODE.get(reply["error"]["code"], 500)
    return JSONResponse(reply, status_code=status)
