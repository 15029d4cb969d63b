"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter

router = APIRouter()


# ── Health ───────────────────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"status": "ok", "service": "lifepilot"}


# ── V1 routes ────────────────────────────────────────────────────────

from .chat import chat_router
from .memory import memory_router
from .metrics import metrics_router

router.include_router(chat_router, prefix="/v1")
router.include_router(memory_router, prefix="/v1")
router.include_router(metrics_router, prefix="/v1")
