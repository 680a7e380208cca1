"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

import secrets
from datetime import timedelta

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader
from psycopg_pool import ConnectionPool

from gatekeeper.adapters.discord.interactions import DiscordInteractionNotifier
from gatekeeper.adapters.repository.postgres import PostgresLedger
from gatekeeper.config.settings import Settings, get_settings
from gatekeeper.domain.configuration import DomainRoleConfiguration
from gatekeeper.domain.delivery import DeliveryDispatcher
from gatekeeper.domain.identity import IdentityHasher
from gatekeeper.domain.ports import RoleGateway
from gatekeeper.domain.tokens import TokenIssuer
from gatekeeper.domain.verification import ClaimPolicy, VerificationEngine


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_ledger(
    request: Request, settings: Settings = Depends(get_settings)
) -> PostgresLedger:
    """Create ledger with connection pool from app state."""
    return PostgresLedger(
        get_pool(request), token_ttl=timedelta(seconds=settings.token_ttl_seconds)
    )


def get_role_gateway(request: Request) -> RoleGateway:
    return request.app.state.role_gateway


def get_dispatcher(request: Request) -> DeliveryDispatcher:
    return request.app.state.dispatcher


def get_interaction_notifier(request: Request) -> DiscordInteractionNotifier | None:
    """Notifier for reply edits, or None when no application id is configured."""
    return getattr(request.app.state, "notifier", None)


def get_verification_engine(
    settings: Settings = Depends(get_settings),
    ledger: PostgresLedger = Depends(get_ledger),
    roles: RoleGateway = Depends(get_role_gateway),
    dispatcher: DeliveryDispatcher = Depends(get_dispatcher),
) -> VerificationEngine:
    """
    Create verification engine with injected dependencies.

    Wires together the ledger, role gateway and mail dispatcher for the
    domain service.
    """
    return VerificationEngine(
        ledger=ledger,
        roles=roles,
        dispatcher=dispatcher,
        hasher=IdentityHasher(
            time_cost=settings.argon2_time_cost,
            memory_cost=settings.argon2_memory_cost_kib,
            parallelism=settings.argon2_parallelism,
        ),
        issuer=TokenIssuer(token_bytes=settings.token_bytes),
        claim_policy=ClaimPolicy(settings.claim_policy),
        role_call_attempts=settings.role_call_attempts,
        role_call_backoff_seconds=settings.role_call_backoff_seconds,
        role_call_max_wait_seconds=settings.role_call_max_wait_seconds,
    )


def get_domain_configuration(
    ledger: PostgresLedger = Depends(get_ledger),
) -> DomainRoleConfiguration:
    return DomainRoleConfiguration(ledger)


# Shared-secret header for the command dispatcher, shown in OpenAPI docs
dispatcher_key_header = APIKeyHeader(name="X-Dispatcher-Key", auto_error=False)


def require_dispatcher_key(
    key: str | None = Security(dispatcher_key_header),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Check the X-Dispatcher-Key header against the configured secret.

    An empty ``dispatcher_api_key`` setting disables the check.
    """
    expected = settings.dispatcher_api_key
    if not expected:
        return
    if key is None or not secrets.compare_digest(key.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid dispatcher key",
        )
