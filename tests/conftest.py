from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import lifepilot.models  # noqa: F401
from lifepilot.core.config import Settings
from lifepilot.core.database import create_tables, make_engine
from lifepilot.services.llm import CompletionError, ModelTier, tiers_from_settings


def _sqlite_url(db_path: Path) -> str:
    return f"sqlite+aiosqlite:///{db_path}"


class FakeCompletion:
    """Scripted stand-in for llm.complete, keyed by tier name.

    A reply may be a string, an exception instance (raised), or missing
    (CompletionError, like an unreachable service).
    """

    def __init__(self, replies: Optional[Dict[str, Any]] = None) -> None:
        self.replies = dict(replies or {})
        self.calls: List[tuple] = []

    async def __call__(self, messages: List[dict], tier: ModelTier) -> str:
        self.calls.append((tier.name, messages))
        reply = self.replies.get(tier.name)
        if isinstance(reply, Exception):
            raise reply
        if reply is None:
            raise CompletionError(f"{tier.name}: no reply scripted")
        return reply

    def called(self, tier_name: str) -> int:
        return sum(1 for name, _ in self.calls if name == tier_name)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, GROQ_API_KEY="test-key")


@pytest.fixture
def tiers(settings: Settings) -> Dict[str, ModelTier]:
    return tiers_from_settings(settings)


@pytest_asyncio.fixture
async def engine(tmp_path: Path):
    engine = make_engine(_sqlite_url(tmp_path / "lifepilot-test.db"))
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_complete():
    return FakeCompletion
