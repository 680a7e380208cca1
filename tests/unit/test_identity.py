"""
Unit tests for the identity hasher.

Identifiers must be deterministic, fixed-size and guild-scoped.
"""

import base64

from gatekeeper.domain.identity import IDENTIFIER_LENGTH, IdentityHasher, identifier_text
from tests.constants import GUILD_ID, OTHER_GUILD_ID


class TestDerive:
    """Tests for IdentityHasher.derive."""

    def test_derive_is_deterministic(self, hasher: IdentityHasher) -> None:
        """Same guild and address always give the same identifier."""
        first = hasher.derive(GUILD_ID, "alice@example.com")
        second = hasher.derive(GUILD_ID, "alice@example.com")
        assert first == second

    def test_derive_returns_32_bytes(self, hasher: IdentityHasher) -> None:
        identifier = hasher.derive(GUILD_ID, "alice@example.com")
        assert isinstance(identifier, bytes)
        assert len(identifier) == IDENTIFIER_LENGTH == 32

    def test_derive_differs_between_guilds(self, hasher: IdentityHasher) -> None:
        """The guild ID is the salt, so guilds never share identifiers."""
        assert hasher.derive(GUILD_ID, "alice@example.com") != hasher.derive(
            OTHER_GUILD_ID, "alice@example.com"
        )

    def test_derive_differs_between_addresses(self, hasher: IdentityHasher) -> None:
        assert hasher.derive(GUILD_ID, "alice@example.com") != hasher.derive(
            GUILD_ID, "bob@example.com"
        )

    def test_derive_does_not_contain_address(self, hasher: IdentityHasher) -> None:
        identifier = hasher.derive(GUILD_ID, "alice@example.com")
        assert b"alice" not in identifier

    def test_cost_parameters_change_identifier(self, hasher: IdentityHasher) -> None:
        """Changing cost parameters re-keys every identifier."""
        other = IdentityHasher(time_cost=2, memory_cost=8, parallelism=1)
        assert hasher.derive(GUILD_ID, "alice@example.com") != other.derive(
            GUILD_ID, "alice@example.com"
        )

    def test_default_parameters(self) -> None:
        hasher = IdentityHasher()
        assert hasher.time_cost == 1
        assert hasher.memory_cost == 64 * 1024
        assert hasher.parallelism == 1


class TestIdentifierText:
    def test_identifier_text_is_standard_base64(self, hasher: IdentityHasher) -> None:
        identifier = hasher.derive(GUILD_ID, "alice@example.com")
        text = identifier_text(identifier)
        assert base64.standard_b64decode(text) == identifier
        assert len(text) == 44
