"""
Async engine plumbing for the ticket store.

`open_database()` turns a URL plus pool sizing into a `Database`: the engine,
its session factory and a semaphore ("gate") that caps how many store
transactions run at once. The gate defaults to the pool size so requests
queue on the semaphore instead of on the pool timeout.
"""

from __future__ import annotations
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncContextManager, AsyncIterator, Callable, Optional

from sqlalchemy import event
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)

Gated = Callable[[], AsyncContextManager[None]]

ASYNC_DRIVERS = {
    "sqlite": "sqlite+aiosqlite",
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
}

SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA busy_timeout=5000;",
    "PRAGMA synchronous=NORMAL;",
)


def normalize_async_url(url: str) -> str:
    scheme, sep, rest = url.partition("://")
    if not sep or scheme not in ASYNC_DRIVERS:
        return url
    return f"{ASYNC_DRIVERS[scheme]}://{rest}"


def postgres_url(host: str, port: int, user: str | None,
                 password: str | None, database: str | None) -> str:
    return URL.create(
        "postgresql+asyncpg",
        username=user,
        password=password,
        host=host,
        port=port,
        database=database,
    ).render_as_string(hide_password=False)


@dataclass
class GatedAsyncSession:
    session: AsyncSession
    gated: Gated


@dataclass
class Database:
    engine: AsyncEngine
    sessions: async_sessionmaker
    gate: asyncio.Semaphore
    gate_limit: int

    def gated(self) -> asyncio.Semaphore:
        # the semaphore is its own async context manager
        return self.gate

    @asynccontextmanager
    async def session(self) -> AsyncIterator[GatedAsyncSession]:
        async with self.sessions() as session:
            yield GatedAsyncSession(session=session, gated=self.gated)

    async def dispose(self) -> None:
        await self.engine.dispose()


def _install_sqlite_pragmas(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _pragmas(dbapi_connection, _):
        cur = dbapi_connection.cursor()
        for pragma in SQLITE_PRAGMAS:
            cur.execute(pragma)
        cur.close()


def open_database(
    database_url: str, *,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    gate_limit: Optional[int] = None,
) -> Database:
    url = normalize_async_url(database_url)
    kw = dict(pool_pre_ping=True)
    if url.startswith("postgresql+asyncpg://"):
        kw.update(pool_size=pool_size, max_overflow=max_overflow,
                  pool_timeout=pool_timeout)

    engine = create_async_engine(url, **kw)
    if url.startswith("sqlite+aiosqlite://"):
        _install_sqlite_pragmas(engine)

    sessions = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    limit = max(1, gate_limit if gate_limit is not None else pool_size)
    return Database(engine=engine, sessions=sessions,
                    gate=asyncio.Semaphore(limit), gate_limit=limit)
