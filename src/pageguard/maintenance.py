"""Periodic hygiene: expire rate-limit windows and purge old nonces."""

import asyncio
import logging

from pageguard.common.config import PageGuardSettings
from pageguard.common.database import DatabaseManager
from pageguard.nonces.service import NonceService
from pageguard.ratelimit.limiter import InMemoryRateLimiter

logger = logging.getLogger(__name__)


async def run_maintenance_once(
    settings: PageGuardSettings,
    db: DatabaseManager,
    rate_limiter: InMemoryRateLimiter,
    nonces: NonceService,
) -> dict[str, int]:
    swept = rate_limiter.sweep()
    async with db.get_session() as session:
        purged = await nonces.cleanup_old(session, settings.nonce_retention_days)
    if swept or purged:
        logger.info("Maintenance: %d rate-limit windows expired, %d nonces purged", swept, purged)
    return {"rate_limit_entries": swept, "nonces": purged}


async def maintenance_loop(
    settings: PageGuardSettings,
    db: DatabaseManager,
    rate_limiter: InMemoryRateLimiter,
    nonces: NonceService,
) -> None:
    """Run :func:`run_maintenance_once` forever; cancel the task to stop."""
    while True:
        await asyncio.sleep(settings.maintenance_interval_seconds)
        try:
            await run_maintenance_once(settings, db, rate_limiter, nonces)
        except Exception:
            # a failed sweep must not kill the loop; the next tick retries
            logger.exception("Maintenance pass failed")
