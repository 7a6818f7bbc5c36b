"""FastAPI API endpoints under /api.

Endpoint groups: health + settings, tool RPC (/rpc/{category}),
installments (generate, list, get).
"""

from fastapi import APIRouter

from .installments import router as installments_router
from .rpc import router as rpc_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(rpc_router)
router.include_router(installments_router)
