"""
Shared fixtures for adversarial tests.

Provides common infrastructure for race condition and enumeration tests:
a real ledger, a role gateway that records calls, and an engine that
mails into memory instead of an SMTP relay.
"""

from collections.abc import Generator

import pytest
from psycopg_pool import ConnectionPool

from gatekeeper.adapters.repository.postgres import PostgresLedger
from gatekeeper.domain.delivery import DeliveryDispatcher
from gatekeeper.domain.identity import IdentityHasher
from gatekeeper.domain.verification import VerificationEngine
from tests.constants import GUILD_ID, ROLE_ID
from tests.database import clean_ledger, open_test_pool
from tests.fakes import CapturingSender, RecordingRoles


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for adversarial tests."""
    pool = open_test_pool()
    yield pool
    pool.close()


@pytest.fixture
def ledger(pool: ConnectionPool) -> PostgresLedger:
    return PostgresLedger(pool)


@pytest.fixture(autouse=True)
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty every ledger table before each test."""
    clean_ledger(pool)
    yield


@pytest.fixture
def roles() -> RecordingRoles:
    return RecordingRoles()


@pytest.fixture
def sender() -> CapturingSender:
    return CapturingSender()


@pytest.fixture
def engine(
    ledger: PostgresLedger, roles: RecordingRoles, sender: CapturingSender
) -> Generator[VerificationEngine, None, None]:
    """Engine for a guild where example.com addresses earn ROLE_ID."""
    ledger.set_domain_role(GUILD_ID, "example.com", ROLE_ID)
    dispatcher = DeliveryDispatcher(sender, max_workers=2)
    yield VerificationEngine(
        ledger=ledger,
        roles=roles,
        dispatcher=dispatcher,
        hasher=IdentityHasher(time_cost=1, memory_cost=8, parallelism=1),
    )
    dispatcher.shutdown()
