"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures exception handlers, and lifespan events.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request
from psycopg_pool import ConnectionPool

from src.adapters.repository.memory import (
    InMemoryAccountRepository,
    InMemoryOtpRepository,
    InMemoryPendingLoginRepository,
)
from src.adapters.repository.postgres import (
    PostgresAccountRepository,
    PostgresOtpRepository,
    PostgresPendingLoginRepository,
    run_migrations,
)
from src.api.dependencies import build_otp_ledger
from src.api.errors import register_exception_handlers
from src.api.v1 import router as v1_router
from src.config.settings import DEFAULT_JWT_SECRET, Settings, get_settings
from src.domain.exceptions import StorageUnavailable

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "OTP-gated authentication API v1 - Register, log in and reset passwords",
    },
]


def configure_storage(app: FastAPI, settings: Settings) -> ConnectionPool | None:
    """
    Create the repositories named by ``settings.storage_backend``.

    Returns the connection pool for the postgres backend so the caller can
    close it on shutdown.
    """
    if settings.storage_backend == "memory":
        logger.info("Using in-memory storage")
        app.state.pool = None
        app.state.account_repository = InMemoryAccountRepository()
        app.state.otp_repository = InMemoryOtpRepository()
        app.state.pending_login_repository = InMemoryPendingLoginRepository()
        return None

    logger.info("Connecting to database...")
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )

    logger.info("Running database migrations...")
    run_migrations(pool)

    app.state.pool = pool
    app.state.account_repository = PostgresAccountRepository(pool)
    app.state.otp_repository = PostgresOtpRepository(pool)
    app.state.pending_login_repository = PostgresPendingLoginRepository(pool)
    return pool


async def reclaim_expired(app: FastAPI, settings: Settings) -> None:
    """
    Periodically delete expired OTP entries and pending logins.

    Expiry is enforced at read time, so this only bounds storage growth.
    """
    ledger = build_otp_ledger(app.state.otp_repository, settings)
    while True:
        await asyncio.sleep(settings.sweep_interval_seconds)
        try:
            otp_count = await asyncio.to_thread(ledger.purge_expired)
            pending_count = await asyncio.to_thread(
                app.state.pending_login_repository.purge_expired
            )
        except StorageUnavailable:
            logger.warning("Reclamation sweep skipped: storage unavailable")
            continue
        logger.info(
            "Reclaimed %d expired OTP entries and %d pending logins", otp_count, pending_count
        )


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates repositories (and the connection pool) on startup
    - Runs migrations on startup
    - Runs the reclamation sweep in the background
    - Closes connection pool on shutdown
    """
    settings = get_settings()

    logger.info("Starting application...")
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET is not set; tokens are signed with the default key")
    pool = configure_storage(app, settings)
    sweeper = asyncio.create_task(reclaim_expired(app, settings))
    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    sweeper.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweeper
    if pool is not None:
        pool.close()
        logger.info("Database connection pool closed")


app = FastAPI(
    title="otpgate",
    description="OTP-gated authentication API - Registration, login and password "
    "recovery with one-time email codes",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

register_exception_handlers(app)

# Include v1 API routes
app.include_router(v1_router, prefix="/v1")


@app.get("/health")
def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with database validation.

    Returns 200 OK if application and database are healthy.
    Raises exception if database connection fails.
    """
    pool = getattr(request.app.state, "pool", None)
    if pool is not None:
        with pool.connection() as conn:
            conn.execute("SELECT 1")

    return {"status": "healthy"}
