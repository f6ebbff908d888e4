"""
Async engine + session factory.

FastAPI endpoints get a session through `get_db`; the Celery worker opens its
own sessions from the same factory inside a private event loop and disposes
the engine when done.
"""
from pathlib import Path

import structlog
from sqlalchemy import inspect, make_url, text
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from resonance.config import settings

log = structlog.get_logger()


class Base(DeclarativeBase):
    pass


# ── URL helpers ────────────────────────────────────────────────────────────

def _raw_url() -> str:
    url = settings.DATABASE_URL
    if not url:
        raise RuntimeError("DATABASE_URL is not set")
    # Normalise postgres:// → postgresql://
    return url.replace("postgres://", "postgresql://", 1)

def _async_url() -> str:
    url = _raw_url()
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


# ── Engine ─────────────────────────────────────────────────────────────────

_async_engine  = None
_async_factory = None


def get_async_engine():
    global _async_engine
    if _async_engine is None:
        url = _async_url()
        if url.startswith("sqlite"):
            database = make_url(url).database
            if database and database != ":memory:":
                Path(database).parent.mkdir(parents=True, exist_ok=True)
            _async_engine = create_async_engine(url, echo=False)
        else:
            _async_engine = create_async_engine(url, echo=False, pool_size=5, max_overflow=10)
    return _async_engine


def get_session_factory():
    global _async_factory
    if _async_factory is None:
        _async_factory = async_sessionmaker(get_async_engine(), class_=AsyncSession, expire_on_commit=False)
    return _async_factory


async def dispose_engine():
    """Drop pooled connections; required before the owning event loop closes."""
    global _async_engine, _async_factory
    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_factory = None


# ── FastAPI dependency ─────────────────────────────────────────────────────

async def get_db():
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ── Startup migration ──────────────────────────────────────────────────────

# Columns added after the first release; legacy tables get them on startup.
LEGACY_COLUMNS = {
    "original_filename": "VARCHAR(500)",
    "bpm":               "INTEGER",
    "key":               "VARCHAR(10)",
    "energy":            "INTEGER",
}


def _missing_columns(sync_conn) -> list[str]:
    existing = {c["name"] for c in inspect(sync_conn).get_columns("tracks")}
    return [name for name in LEGACY_COLUMNS if name not in existing]


async def init_db(engine=None):
    engine = engine or get_async_engine()

    from resonance.models import track, user  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        log.info("tables_created")

    async with engine.begin() as conn:
        missing = await conn.run_sync(_missing_columns)
        for name in missing:
            await conn.execute(text(f'ALTER TABLE tracks ADD COLUMN "{name}" {LEGACY_COLUMNS[name]}'))
            log.info("column_added", table="tracks", column=name)
    log.info("database_ready")
