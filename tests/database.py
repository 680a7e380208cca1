"""PostgreSQL helpers shared by the integration and adversarial suites."""

import psycopg
import pytest
from psycopg_pool import ConnectionPool

from gatekeeper.adapters.repository.postgres import run_migrations
from gatekeeper.config.settings import get_settings

LEDGER_TABLES = ("pending_tokens", "verified_bindings", "bans", "domain_roles")


def open_test_pool() -> ConnectionPool:
    """Open a migrated pool, or skip the module when Postgres is down."""
    settings = get_settings()
    try:
        psycopg.connect(settings.database_url, connect_timeout=3).close()
    except psycopg.OperationalError as exc:
        pytest.skip(f"PostgreSQL unavailable: {type(exc).__name__}")

    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10, open=True)
    run_migrations(pool)
    return pool


def clean_ledger(pool: ConnectionPool) -> None:
    with pool.connection() as conn:
        for table in LEDGER_TABLES:
            conn.execute(f"DELETE FROM {table}")
        conn.commit()
