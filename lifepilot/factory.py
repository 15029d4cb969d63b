"""
FastAPI application factory.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import get_settings
from .core.database import close_db, get_session_factory, init_db
from .core.flags import get_flags
from .api.router import router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="LifePilot",
        description="Personal life-management assistant",
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
        logger.info("Starting LifePilot (env=%s)", settings.env)

        # Create database tables
        await init_db()

        flags = get_flags()
        if flags.clean_memories_on_startup:
            from .services.memory import MemoryStore
            from .core.pipeline_config import build_pipeline_config

            async with get_session_factory()() as session:
                deleted = await MemoryStore(session, build_pipeline_config(settings).memory).clean_old_memories()
                await session.commit()
            logger.info("Startup memory cleanup removed %d memories", deleted)

        logger.info(
            "Flags: smart_pipeline=%s classifier=%s rewriter=%s compressor=%s formatter=%s",
            flags.use_smart_pipeline, flags.use_remote_classifier, flags.use_remote_rewriter,
            flags.use_remote_compressor, flags.use_remote_formatter,
        )
        if not settings.groq_api_key:
            logger.warning("GROQ_API_KEY is not set; every stage will use its local fallback")

        logger.info("LifePilot is ready")

    # ── Shutdown ─────────────────────────────────────────────────
    @app.on_event("shutdown")
    async def on_shutdown():
        from .services.llm import close_client
        await close_client()
        await close_db()
        logger.info("LifePilot shut down")

    # ── Routes ───────────────────────────────────────────────────
    app.include_router(router)

    return app
