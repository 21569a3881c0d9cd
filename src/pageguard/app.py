"""FastAPI application factory for PageGuard."""

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pageguard.common.config import get_settings
from pageguard.common.logging import get_logger, setup_logging
from pageguard.common.schemas import HealthResponse

logger = get_logger("app")


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from pageguard.deps import get_db, get_nonce_service, get_rate_limiter
        from pageguard.maintenance import maintenance_loop

        db = get_db()
        await db.init()
        await db.create_all()
        sweeper = asyncio.create_task(
            maintenance_loop(settings, db, get_rate_limiter(), get_nonce_service())
        )
        logger.info(
            "PageGuard ready (maintenance every %ds)", settings.maintenance_interval_seconds,
        )
        yield
        # Shutdown
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Page", "X-Total-Pages", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from pageguard.viewer.router import router as viewer_router
    from pageguard.access_log.router import router as access_log_router

    prefix = settings.api_prefix
    app.include_router(viewer_router, prefix=prefix, tags=["viewer"])
    app.include_router(access_log_router, prefix=prefix, tags=["access-logs"])

    return app
