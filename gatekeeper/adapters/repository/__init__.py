"""Repository adapters - Database implementations."""

from .postgres import PostgresLedger, run_migrations

__all__ = ["PostgresLedger", "run_migrations"]
