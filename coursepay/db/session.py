from __future__ import annotations

from typing import Any, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from coursepay.config import settings


_engine: AsyncEngine | None = None
_SessionLocal: async_sessionmaker[AsyncSession] | None = None

# Seconds a SQLite writer waits on the database lock before failing
SQLITE_BUSY_TIMEOUT = 30


def engine_kwargs(db_url: str) -> Dict[str, Any]:
    if make_url(db_url).get_backend_name() == "sqlite":
        # Concurrent claim writers queue on the file lock instead of erroring
        return {"connect_args": {"timeout": SQLITE_BUSY_TIMEOUT}}
    # MySQL/MariaDB via asyncmy: pool_pre_ping detects connections the server dropped
    return {"pool_pre_ping": True}


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_async_engine(settings.db_url, **engine_kwargs(settings.db_url))
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = async_sessionmaker(
            bind=get_engine(),
            expire_on_commit=False,
        )
    return _SessionLocal


async def dispose_engine() -> None:
    global _engine, _SessionLocal
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _SessionLocal = None
