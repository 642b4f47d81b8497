"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter

from .sessions import sessions_router

router = APIRouter()


# ── Health ───────────────────────────────────────────────────────────

@router.get("/health")
async def health():
    from ..core.redis import ping

    body = {"status": "ok", "service": "stylesense"}
    redis_ok = await ping()
    if redis_ok is not None:
        body["redis"] = "ok" if redis_ok else "unreachable"
    return body


# ── Feature config ───────────────────────────────────────────────────

@router.get("/config")
async def public_config():
    from ..core.config import get_settings
    from ..core.flags import get_flags

    settings = get_settings()
    flags = get_flags()
    return {
        "retailer": settings.retailer_name,
        "web_search": flags.use_web_search,
        "visual": flags.enable_visual,
    }


# ── V1 routes ────────────────────────────────────────────────────────

router.include_router(sessions_router, prefix="/v1")
