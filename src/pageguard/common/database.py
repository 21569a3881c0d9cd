"""Engine and session handling for the PageGuard tables."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from pageguard.common.config import PageGuardSettings, get_settings
from pageguard.common.models import Base

# Registers every table on Base.metadata before create_all() runs.
import pageguard.documents.models  # noqa: F401
import pageguard.nonces.models  # noqa: F401
import pageguard.access_log.models  # noqa: F401

# Seconds a SQLite writer waits on a locked database before giving up.
# Concurrent page-1 requests race on the same nonce row.
SQLITE_BUSY_TIMEOUT = 15


def _engine_options(url: str) -> dict:
    if make_url(url).get_backend_name() == "sqlite":
        return {"connect_args": {"timeout": SQLITE_BUSY_TIMEOUT}}
    return {}


class DatabaseManager:
    """One async engine plus short, self-committing sessions.

    Each ``get_session()`` block is its own transaction: it commits when the
    block exits and rolls back if it raises.
    """

    def __init__(self, settings: PageGuardSettings | None = None):
        self._settings = settings or get_settings()
        self.engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        url = self._settings.db_url
        self.engine = create_async_engine(url, echo=False, **_engine_options(url))
        self._session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    def _require_engine(self) -> AsyncEngine:
        if self.engine is None:
            raise RuntimeError("DatabaseManager.init() has not been awaited")
        return self.engine

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        self._require_engine()
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_all(self) -> None:
        async with self._require_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
        self.engine = None
        self._session_factory = None
