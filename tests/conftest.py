"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- Cheap identity hashing (Argon2id with minimal memory)
- Mocked ports for domain service tests
"""

from concurrent.futures import Future
from unittest.mock import Mock

import pytest

from gatekeeper.domain.delivery import DeliveryDispatcher
from gatekeeper.domain.identity import IdentityHasher
from gatekeeper.domain.ports import IdentityState, RoleGateway, VerificationLedger
from gatekeeper.domain.verification import VerificationEngine
from tests.constants import ROLE_ID


@pytest.fixture
def hasher() -> IdentityHasher:
    """Argon2id with 8 KiB memory; production cost makes tests slow."""
    return IdentityHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def ledger() -> Mock:
    ledger = Mock(spec=VerificationLedger)
    ledger.role_for_domain.return_value = ROLE_ID
    ledger.domain_roles.return_value = {"example.com": ROLE_ID}
    ledger.binding_for.return_value = None
    ledger.bindings_for_grantee.return_value = []
    ledger.is_banned.return_value = False
    ledger.state_of.return_value = IdentityState.UNREGISTERED
    return ledger


@pytest.fixture
def roles() -> Mock:
    return Mock(spec=RoleGateway)


@pytest.fixture
def dispatcher() -> Mock:
    dispatcher = Mock(spec=DeliveryDispatcher)
    done: Future[bool] = Future()
    done.set_result(True)
    dispatcher.submit.return_value = done
    return dispatcher


@pytest.fixture
def engine(
    ledger: Mock, roles: Mock, dispatcher: Mock, hasher: IdentityHasher
) -> VerificationEngine:
    return VerificationEngine(
        ledger=ledger,
        roles=roles,
        dispatcher=dispatcher,
        hasher=hasher,
        role_call_backoff_seconds=0,
    )
