"""Tests for periodic maintenance."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from pageguard.common.config import PageGuardSettings
from pageguard.common.database import DatabaseManager
from pageguard.maintenance import maintenance_loop, run_maintenance_once
from pageguard.nonces.models import NonceModel
from pageguard.nonces.service import NonceService
from pageguard.ratelimit.limiter import InMemoryRateLimiter, RateLimitConfig


def make_settings(**overrides) -> PageGuardSettings:
    defaults = {"db_url": "sqlite+aiosqlite://"}
    defaults.update(overrides)
    return PageGuardSettings(**defaults)


@pytest.fixture
async def db():
    manager = DatabaseManager(make_settings())
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


class TestMaintenance:
    async def test_sweeps_and_purges(self, db):
        clock_ms = [1_000_000.0]
        limiter = InMemoryRateLimiter(RateLimitConfig(10, 1000), clock=lambda: clock_ms[0])
        limiter.check("10.0.0.1", "pages")
        limiter.check("10.0.0.2", "mint")
        clock_ms[0] += 5000

        nonces = NonceService()
        async with db.get_session() as session:
            old = await nonces.mint(session, "doc-1")
            await nonces.mint(session, "doc-1")
        async with db.get_session() as session:
            await session.execute(
                update(NonceModel)
                .where(NonceModel.nonce == old.nonce)
                .values(created_at=datetime.now(timezone.utc) - timedelta(days=30))
            )

        result = await run_maintenance_once(make_settings(), db, limiter, nonces)
        assert result == {"rate_limit_entries": 2, "nonces": 1}
        assert len(limiter) == 0

    async def test_nothing_to_do(self, db):
        result = await run_maintenance_once(
            make_settings(), db, InMemoryRateLimiter(), NonceService(),
        )
        assert result == {"rate_limit_entries": 0, "nonces": 0}

    async def test_loop_survives_failures_and_cancels(self, db):
        settings = make_settings(maintenance_interval_seconds=0)
        calls = []

        class FlakyLimiter(InMemoryRateLimiter):
            def sweep(self):
                calls.append(1)
                if len(calls) == 1:
                    raise RuntimeError("boom")
                return 0

        task = asyncio.create_task(maintenance_loop(settings, db, FlakyLimiter(), NonceService()))
        while len(calls) < 3:
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(calls) >= 3
