# app/db.py
from __future__ import annotations

import os
import pathlib
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

logger = logging.getLogger("uvicorn.error")

_engine: Optional[AsyncEngine] = None


class Base(DeclarativeBase):
    pass


def _resolve_dsn() -> str:
    """
    Prefer settings.DATABASE_URL, then env var DATABASE_URL,
    else default to a local SQLite database under ./data/.
    """
    dsn = (
        getattr(settings, "DATABASE_URL", None)
        or os.getenv("DATABASE_URL")
        or "sqlite+aiosqlite:///./data/tpos_sync.db"
    )

    # If using SQLite, make sure the folder exists so SQLAlchemy can create the file.
    if dsn.startswith("sqlite") and ":memory:" not in dsn:
        try:
            # Handle sqlite+aiosqlite:///./data/tpos_sync.db
            # or sqlite+aiosqlite:////code/data/tpos_sync.db
            sep = "///" if "///" in dsn else "//"
            path_part = dsn.split(sep, 1)[1] if sep in dsn else ""
            if path_part:
                path = pathlib.Path(path_part).resolve()
                path.parent.mkdir(parents=True, exist_ok=True)
        except Exception as e:
            logger.warning("[DB] Could not ensure SQLite directory exists: %s", e)

    return dsn


def get_engine() -> AsyncEngine:
    """
    Lazily create the global AsyncEngine.
    """
    global _engine
    if _engine is None:
        dsn = _resolve_dsn()
        _engine = create_async_engine(
            dsn,
            echo=False,
            pool_pre_ping=True,
        )
        logger.info("[DB] engine initialized for %s", dsn)
    return _engine


async def create_tables(engine: AsyncEngine) -> None:
    # models must be imported so their tables are registered on Base.metadata
    import app.models.products  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """
    Ensure the engine is created, a first connection can be acquired
    and all tables exist.
    """
    eng = get_engine()
    try:
        await create_tables(eng)
    except Exception as e:
        logger.error("[DB] initial connect failed: %s", e)
        raise


async def close_db() -> None:
    """Dispose the global engine; the next get_engine() builds a fresh one."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
