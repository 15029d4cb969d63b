"""
Async SQLAlchemy engine and session management. Single connection pool for everything.

SQLite (the default local database and the test database) runs with explicit
BEGIN statements so that SAVEPOINTs behave; the memory store relies on them
to survive a lost insert race without poisoning the request's session.
"""

import logging
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base. All models inherit from this."""
    pass


# Lazy globals, initialized on first call to get_engine()
_engine = None
_session_factory = None


def normalize_url(url: str) -> str:
    """Force the async driver for plain postgresql:// URLs."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _use_explicit_sqlite_transactions(engine: AsyncEngine) -> None:
    # The sqlite3 driver opens transactions lazily and skips SAVEPOINT;
    # take BEGIN out of its hands and emit it ourselves.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def make_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Build an async engine for `url`. Pool options apply to server databases only."""
    url = normalize_url(url)
    if is_sqlite(url):
        engine = create_async_engine(url, echo=echo)
        _use_explicit_sqlite_transactions(engine)
        return engine
    return create_async_engine(
        url,
        echo=echo,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
    )


def get_engine():
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = make_engine(settings.database_url, echo=settings.debug)
        logger.info(
            "Database engine created (%s)",
            "sqlite" if is_sqlite(str(_engine.url)) else "postgresql",
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def get_db() -> AsyncSession:
    """FastAPI dependency. Yields a DB session per request."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables(engine: AsyncEngine) -> None:
    """Create the memory and domain tables on `engine` if missing."""
    # Import all models so they register with Base.metadata
    from ..models import domain, memory  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db():
    """Create all tables. Called on startup."""
    await create_tables(get_engine())
    logger.info("Database tables created/verified")


async def close_db():
    """Dispose engine. Called on shutdown."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database engine disposed")
