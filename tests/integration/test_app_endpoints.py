"""
Integration tests for the assembled FastAPI application.

Enters the real lifespan (pool, migrations, dispatcher, purge task) against
PostgreSQL. Discord and mail are swapped for in-memory fakes through
dependency overrides.
"""

import time
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from gatekeeper.api.dependencies import get_dispatcher, get_role_gateway
from gatekeeper.api.main import app
from gatekeeper.domain.delivery import DeliveryDispatcher
from tests.constants import ALICE, GUILD_ID, ROLE_ID
from tests.fakes import CapturingSender, RecordingRoles

pytestmark = pytest.mark.integration

BASE = f"/v1/guilds/{GUILD_ID}"


@pytest.fixture
def client(
    roles: RecordingRoles, sender: CapturingSender
) -> Generator[TestClient, None, None]:
    dispatcher = DeliveryDispatcher(sender, max_workers=1)
    app.dependency_overrides[get_role_gateway] = lambda: roles
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()
        dispatcher.shutdown()


class TestHealth:
    def test_health_checks_database(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestEndToEnd:
    def test_unconfigured_guild_register_is_409(self, client: TestClient) -> None:
        response = client.post(
            f"{BASE}/register", json={"grantee_id": ALICE, "email": "alice@example.com"}
        )
        assert response.status_code == 409

    def test_configure_register_verify(
        self, client: TestClient, roles: RecordingRoles, sender: CapturingSender
    ) -> None:
        configured = client.put(f"{BASE}/domains/@Example.com", json={"role_id": ROLE_ID})
        assert configured.json() == {"domain": "example.com", "role_id": ROLE_ID}

        registered = client.post(
            f"{BASE}/register", json={"grantee_id": ALICE, "email": "alice@example.com"}
        )
        assert registered.status_code == 202
        assert registered.json()["status"] == "sending"

        for _ in range(50):
            if "alice@example.com" in sender.bodies:
                break
            time.sleep(0.1)
        token = sender.token_for("alice@example.com")

        verified = client.post(f"{BASE}/verify", json={"grantee_id": ALICE, "token": token})
        assert verified.status_code == 200
        assert verified.json()["role_id"] == ROLE_ID
        assert ("grant", GUILD_ID, ALICE, ROLE_ID) in roles.calls

        whois = client.get(f"{BASE}/members/{ALICE}/identifiers")
        assert len(whois.json()["identifiers"]) == 1

        replay = client.post(f"{BASE}/verify", json={"grantee_id": ALICE, "token": token})
        assert replay.status_code == 401

    def test_ban_unverified_member(self, client: TestClient) -> None:
        response = client.post(f"{BASE}/bans", json={"grantee_id": ALICE})
        assert response.status_code == 200
        assert "not verified" in response.json()["message"]
