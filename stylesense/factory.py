"""
FastAPI application factory.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import get_settings
from .core.flags import get_flags
from .core.redis import close_redis
from .api.router import router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="StyleSense",
        description="Multi-agent outfit recommendations",
        version="1.0.0",
        docs_url="/docs" if settings.env == "development" else None,
        redoc_url="/redoc" if settings.env == "development" else None,
    )

    # ── CORS ─────────────────────────────────────────────────────
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Startup ──────────────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup():
        logging.basicConfig(
            level=getattr(logging, settings.log_level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
        logger.info("Starting StyleSense (env=%s)", settings.env)

        from .orchestrator.registry import get_session_registry
        get_session_registry()

        flags = get_flags()
        logger.info(
            "Flags: redis=%s web_search=%s visual=%s | models: text=%s image=%s | retailer=%s",
            flags.use_redis, flags.use_web_search, flags.enable_visual,
            settings.text_model, settings.image_model, settings.retailer_name,
        )
        if not settings.gemini_api_key:
            logger.warning("GEMINI_API_KEY is not set; every stylist call will degrade to its fallback")

        logger.info("StyleSense is ready")

    # ── Shutdown ─────────────────────────────────────────────────
    @app.on_event("shutdown")
    async def on_shutdown():
        from .orchestrator.registry import get_session_registry
        await get_session_registry().close_all()
        await close_redis()
        logger.info("StyleSense shut down")

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router)

    return app
