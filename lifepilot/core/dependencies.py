"""
FastAPI dependencies. Injected into route handlers.
"""

from functools import partial

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import get_db as _get_db
from .flags import FeatureFlags, get_flags
from .pipeline_config import build_pipeline_config
from ..orchestrator.base_stage import CompleteFn
from ..orchestrator.orchestrator import AssistantPipeline
from ..orchestrator.registry import build_pipeline
from ..services import llm
from ..services.memory import MemoryStore


async def get_db() -> AsyncSession:
    """Yields an async DB session per request."""
    async for session in _get_db():
        yield session


def get_complete() -> CompleteFn:
    """The completion callable every stage uses. Overridden in tests."""
    return partial(llm.complete, settings=get_settings())


def get_feature_flags() -> FeatureFlags:
    return get_flags()


async def get_memory_store(db: AsyncSession = Depends(get_db)) -> MemoryStore:
    return MemoryStore(db, build_pipeline_config().memory)


async def get_pipeline(
    db: AsyncSession = Depends(get_db),
    complete: CompleteFn = Depends(get_complete),
    flags: FeatureFlags = Depends(get_feature_flags),
) -> AssistantPipeline:
    return build_pipeline(db, flags=flags, complete=complete)
