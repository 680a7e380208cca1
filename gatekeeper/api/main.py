"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures exception handlers, and lifespan events.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from psycopg_pool import ConnectionPool

from gatekeeper import __version__
from gatekeeper.adapters.discord import (
    DiscordInteractionNotifier,
    DiscordRoleGateway,
    build_discord_client,
)
from gatekeeper.adapters.repository.postgres import PostgresLedger, run_migrations
from gatekeeper.adapters.smtp import ConsoleEmailSender, SmtpEmailSender
from gatekeeper.api.errors import register_exception_handlers
from gatekeeper.api.v1 import router as v1_router
from gatekeeper.config.settings import Settings, get_settings
from gatekeeper.domain.delivery import DeliveryDispatcher
from gatekeeper.domain.exceptions import LedgerError
from gatekeeper.domain.ports import EmailSender

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Guild verification API v1 - Email-domain role verification, bans and domain configuration",
    },
]


def build_email_sender(settings: Settings) -> EmailSender:
    """Select the mail backend named by ``email_backend``."""
    if settings.email_backend == "smtp":
        return SmtpEmailSender(
            host=settings.smtp_host,
            from_address=settings.smtp_from,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            timeout=settings.smtp_timeout_seconds,
        )
    return ConsoleEmailSender()


async def purge_expired_tokens(ledger: PostgresLedger, interval_seconds: float) -> None:
    """Delete expired pending tokens every ``interval_seconds`` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            purged = await asyncio.to_thread(ledger.purge_expired_tokens)
        except LedgerError:
            logger.exception("Expired token purge failed")
            continue
        if purged:
            logger.info("Purged %d expired tokens", purged)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates database connection pool and runs migrations
    - Creates the Discord HTTP client, role gateway and reply notifier
    - Starts the mail dispatcher and the expired token purge task
    - Tears all of them down in reverse order on shutdown
    """
    settings = get_settings()

    logger.info("Starting application...")
    logger.info("Connecting to database...")

    # Create connection pool with explicit sizing
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )

    # Run migrations
    logger.info("Running database migrations...")
    run_migrations(pool)

    if not settings.discord_bot_token:
        logger.warning("DISCORD_BOT_TOKEN is not set, role calls will fail")
    discord_client = build_discord_client(
        settings.discord_bot_token,
        api_base=settings.discord_api_base,
        timeout=settings.http_timeout_seconds,
    )
    dispatcher = DeliveryDispatcher(
        build_email_sender(settings), max_workers=settings.mail_workers
    )
    logger.info("Mail backend: %s (%d workers)", settings.email_backend, settings.mail_workers)

    # Store collaborators in app state for dependency injection
    app.state.pool = pool
    app.state.role_gateway = DiscordRoleGateway(discord_client)
    app.state.notifier = (
        DiscordInteractionNotifier(discord_client, settings.discord_application_id)
        if settings.discord_application_id is not None
        else None
    )
    app.state.dispatcher = dispatcher

    purge_ledger = PostgresLedger(pool, token_ttl=timedelta(seconds=settings.token_ttl_seconds))
    purge_task = asyncio.create_task(
        purge_expired_tokens(purge_ledger, settings.token_purge_interval_seconds)
    )

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    purge_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await purge_task
    dispatcher.shutdown(wait=True)
    logger.info("Mail dispatcher drained")
    discord_client.close()
    pool.close()
    logger.info("Database connection pool closed")


app = FastAPI(
    title="gatekeeper",
    description="Email-domain role verification for Discord guilds",
    version=__version__,
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
    # Validate database connectivity
    pool = request.app.state.pool
    with pool.connection() as conn:
        conn.execute("SELECT 1")

    return {"status": "healthy"}
