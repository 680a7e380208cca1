"""
PostgreSQL ledger adapter - Implements VerificationLedger protocol.

This module provides the PostgreSQL implementation of the domain's
ledger port using psycopg3 with raw SQL.

Concurrency Design:
-------------------
1. **Primary keys** on (guild_id, identifier) for pending tokens, bindings
   and bans. One pending token and at most one live binding per identifier.

2. **Token consumption** is a ``DELETE ... RETURNING`` inside the commit
   transaction. Two requests redeeming the same token serialize on the row
   lock; the second sees zero rows and writes nothing.

3. **Advisory transaction locks** keyed on the identifier and on the grantee
   serialize commits and bans that touch the same identity, so the ban
   re-check and the "one identity per grantee" cleanup see committed state.
   Keys are taken in sorted order to avoid lock-order deadlocks.

4. **TTL** is checked with database time (``NOW()``) on every read, so an
   expired token is indistinguishable from a missing one.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path

import psycopg
from psycopg_pool import ConnectionPool

from gatekeeper.domain.exceptions import LedgerError
from gatekeeper.domain.identity import Identifier
from gatekeeper.domain.ports import (
    Binding,
    CommitResult,
    CommitStatus,
    IdentityState,
    TokenClaim,
)
from gatekeeper.domain.tokens import Token

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = timedelta(minutes=5)


def _identifier_lock_key(identifier: bytes) -> int:
    return int.from_bytes(identifier[:8], "big", signed=True)


class PostgresLedger:
    """
    Implements VerificationLedger protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool, token_ttl: timedelta = DEFAULT_TOKEN_TTL) -> None:
        """
        Initialize ledger with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
            token_ttl: Absolute lifetime of a pending token
        """
        self._pool = pool
        self._token_ttl = token_ttl

    @contextmanager
    def _cursor(self) -> Iterator[psycopg.Cursor]:
        """One transaction. Store errors surface as LedgerError with the cause chained."""
        try:
            with self._pool.connection() as conn, conn.cursor() as cursor:
                yield cursor
                conn.commit()
        except psycopg.Error as exc:
            logger.error("Ledger operation failed: %s: %s", type(exc).__name__, exc)
            raise LedgerError() from exc

    @staticmethod
    def _lock(cursor: psycopg.Cursor, *keys: int) -> None:
        for key in sorted(set(keys)):
            cursor.execute("SELECT pg_advisory_xact_lock(%s::bigint)", (key,))

    # -- tokens ---------------------------------------------------------

    def issue_token(
        self, guild_id: int, identifier: Identifier, role_id: int, token: Token
    ) -> None:
        """
        Store a pending token, replacing any earlier one for the identifier.

        Uses INSERT ... ON CONFLICT DO UPDATE so the superseded token row is
        overwritten in place and can no longer resolve.
        """
        sql = """
            INSERT INTO pending_tokens (guild_id, identifier, token, role_id, created_at)
            VALUES (%s, %s, %s, %s, NOW())
            ON CONFLICT (guild_id, identifier) DO UPDATE
            SET token = EXCLUDED.token,
                role_id = EXCLUDED.role_id,
                created_at = NOW()
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (guild_id, identifier, token.raw, role_id))

    def resolve_token(self, guild_id: int, token: Token) -> TokenClaim | None:
        sql = """
            SELECT identifier, role_id
            FROM pending_tokens
            WHERE guild_id = %s
              AND token = %s
              AND created_at > NOW() - %s
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (guild_id, token.raw, self._token_ttl))
            row = cursor.fetchone()

        if row is None:
            return None
        return TokenClaim(identifier=Identifier(bytes(row[0])), role_id=row[1])

    def purge_expired_tokens(self) -> int:
        sql = "DELETE FROM pending_tokens WHERE created_at <= NOW() - %s"
        with self._cursor() as cursor:
            cursor.execute(sql, (self._token_ttl,))
            return cursor.rowcount

    # -- bindings -------------------------------------------------------

    def is_banned(self, guild_id: int, identifier: Identifier) -> bool:
        sql = "SELECT 1 FROM bans WHERE guild_id = %s AND identifier = %s"
        with self._cursor() as cursor:
            cursor.execute(sql, (guild_id, identifier))
            return cursor.fetchone() is not None

    def state_of(self, guild_id: int, identifier: Identifier) -> IdentityState:
        sql = """
            SELECT
                EXISTS (SELECT 1 FROM bans
                        WHERE guild_id = %(guild)s AND identifier = %(identifier)s),
                EXISTS (SELECT 1 FROM verified_bindings
                        WHERE guild_id = %(guild)s AND identifier = %(identifier)s),
                EXISTS (SELECT 1 FROM pending_tokens
                        WHERE guild_id = %(guild)s AND identifier = %(identifier)s
                          AND created_at > NOW() - %(ttl)s)
        """
        params = {"guild": guild_id, "identifier": identifier, "ttl": self._token_ttl}
        with self._cursor() as cursor:
            cursor.execute(sql, params)
            banned, verified, pending = cursor.fetchone()

        if banned:
            return IdentityState.BANNED
        if verified:
            return IdentityState.VERIFIED
        if pending:
            return IdentityState.PENDING
        return IdentityState.UNREGISTERED

    def binding_for(self, guild_id: int, identifier: Identifier) -> Binding | None:
        sql = """
            SELECT grantee_id, role_id
            FROM verified_bindings
            WHERE guild_id = %s AND identifier = %s
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (guild_id, identifier))
            row = cursor.fetchone()

        if row is None:
            return None
        return Binding(guild_id, identifier, grantee_id=row[0], role_id=row[1])

    def bindings_for_grantee(self, guild_id: int, grantee_id: int) -> list[Binding]:
        sql = """
            SELECT identifier, role_id
            FROM verified_bindings
            WHERE guild_id = %s AND grantee_id = %s
            ORDER BY verified_at
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (guild_id, grantee_id))
            rows = cursor.fetchall()

        return [
            Binding(guild_id, Identifier(bytes(identifier)), grantee_id, role_id)
            for identifier, role_id in rows
        ]

    def commit_verification(
        self, guild_id: int, token: Token, binding: Binding
    ) -> CommitResult:
        """
        Consume the token and store the binding in one transaction.

        See VerificationLedger.commit_verification for the contract.
        """
        consume_sql = """
            DELETE FROM pending_tokens
            WHERE guild_id = %s
              AND token = %s
              AND identifier = %s
              AND created_at > NOW() - %s
            RETURNING role_id
        """

        banned_sql = "SELECT 1 FROM bans WHERE guild_id = %s AND identifier = %s"

        # Bindings this commit supersedes: same identifier held by someone
        # else, or the same grantee verified with another identifier.
        displace_sql = """
            DELETE FROM verified_bindings
            WHERE guild_id = %(guild)s
              AND ((identifier = %(identifier)s AND grantee_id <> %(grantee)s)
                   OR (grantee_id = %(grantee)s AND identifier <> %(identifier)s))
            RETURNING identifier, grantee_id, role_id
        """

        insert_sql = """
            INSERT INTO verified_bindings (guild_id, identifier, grantee_id, role_id, verified_at)
            VALUES (%s, %s, %s, %s, NOW())
            ON CONFLICT (guild_id, identifier) DO UPDATE
            SET grantee_id = EXCLUDED.grantee_id,
                role_id = EXCLUDED.role_id,
                verified_at = NOW()
        """

        with self._cursor() as cursor:
            self._lock(cursor, _identifier_lock_key(binding.identifier), binding.grantee_id)

            cursor.execute(
                consume_sql, (guild_id, token.raw, binding.identifier, self._token_ttl)
            )
            if cursor.fetchone() is None:
                return CommitResult(CommitStatus.TOKEN_GONE)

            cursor.execute(banned_sql, (guild_id, binding.identifier))
            if cursor.fetchone() is not None:
                return CommitResult(CommitStatus.BANNED)

            cursor.execute(
                displace_sql,
                {
                    "guild": guild_id,
                    "identifier": binding.identifier,
                    "grantee": binding.grantee_id,
                },
            )
            displaced = tuple(
                Binding(guild_id, Identifier(bytes(identifier)), grantee_id, role_id)
                for identifier, grantee_id, role_id in cursor.fetchall()
            )

            cursor.execute(
                insert_sql,
                (guild_id, binding.identifier, binding.grantee_id, binding.role_id),
            )

        return CommitResult(CommitStatus.COMMITTED, displaced)

    # -- bans -----------------------------------------------------------

    def ban(
        self, guild_id: int, identifier: Identifier, grantee_id: int | None = None
    ) -> Binding | None:
        unbind_sql = """
            DELETE FROM verified_bindings
            WHERE guild_id = %s AND identifier = %s
            RETURNING grantee_id, role_id
        """
        drop_tokens_sql = "DELETE FROM pending_tokens WHERE guild_id = %s AND identifier = %s"
        ban_sql = """
            INSERT INTO bans (guild_id, identifier, grantee_id, banned_at)
            VALUES (%s, %s, %s, NOW())
            ON CONFLICT (guild_id, identifier) DO UPDATE
            SET grantee_id = COALESCE(EXCLUDED.grantee_id, bans.grantee_id)
        """

        with self._cursor() as cursor:
            self._lock(cursor, _identifier_lock_key(identifier))
            cursor.execute(unbind_sql, (guild_id, identifier))
            row = cursor.fetchone()
            cursor.execute(drop_tokens_sql, (guild_id, identifier))
            cursor.execute(ban_sql, (guild_id, identifier, grantee_id))

        if row is None:
            return None
        return Binding(guild_id, identifier, grantee_id=row[0], role_id=row[1])

    def unban(self, guild_id: int, identifier: Identifier) -> bool:
        sql = "DELETE FROM bans WHERE guild_id = %s AND identifier = %s"
        with self._cursor() as cursor:
            cursor.execute(sql, (guild_id, identifier))
            return cursor.rowcount > 0

    def unban_grantee(self, guild_id: int, grantee_id: int) -> int:
        sql = "DELETE FROM bans WHERE guild_id = %s AND grantee_id = %s"
        with self._cursor() as cursor:
            cursor.execute(sql, (guild_id, grantee_id))
            return cursor.rowcount

    # -- domain configuration -------------------------------------------

    def set_domain_role(self, guild_id: int, domain: str, role_id: int) -> None:
        sql = """
            INSERT INTO domain_roles (guild_id, email_domain, role_id)
            VALUES (%s, %s, %s)
            ON CONFLICT (guild_id, email_domain) DO UPDATE
            SET role_id = EXCLUDED.role_id
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (guild_id, domain, role_id))

    def delete_domain_role(self, guild_id: int, domain: str) -> bool:
        sql = "DELETE FROM domain_roles WHERE guild_id = %s AND email_domain = %s"
        with self._cursor() as cursor:
            cursor.execute(sql, (guild_id, domain))
            return cursor.rowcount > 0

    def role_for_domain(self, guild_id: int, domain: str) -> int | None:
        sql = "SELECT role_id FROM domain_roles WHERE guild_id = %s AND email_domain = %s"
        with self._cursor() as cursor:
            cursor.execute(sql, (guild_id, domain))
            row = cursor.fetchone()
        return row[0] if row is not None else None

    def domain_roles(self, guild_id: int) -> dict[str, int]:
        sql = """
            SELECT email_domain, role_id
            FROM domain_roles
            WHERE guild_id = %s
            ORDER BY email_domain
        """
        with self._cursor() as cursor:
            cursor.execute(sql, (guild_id,))
            return {domain: role_id for domain, role_id in cursor.fetchall()}


MIGRATIONS_DIR = Path(__file__).resolve().parents[3] / "migrations"


def run_migrations(pool: ConnectionPool, migrations_dir: Path = MIGRATIONS_DIR) -> None:
    """
    Apply every ``*.sql`` file in ``migrations_dir`` in filename order.

    Files must be idempotent (IF NOT EXISTS); they run on every startup.

    Raises:
        RuntimeError: A migration failed; the cause is chained
    """
    sql_files = sorted(migrations_dir.glob("*.sql")) if migrations_dir.is_dir() else []
    if not sql_files:
        logger.warning("No migrations found in %s", migrations_dir)
        return

    for sql_file in sql_files:
        try:
            with pool.connection() as conn:
                conn.execute(sql_file.read_text())
        except psycopg.Error as exc:
            logger.error("Migration %s failed: %s", sql_file.name, exc)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from exc
        logger.info("Migration applied: %s", sql_file.name)
