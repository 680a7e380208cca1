"""
Unit tests for DomainRoleConfiguration.

Tests domain allow-list logic with a mocked ledger.
"""

from unittest.mock import Mock

import pytest

from gatekeeper.domain.configuration import DomainRoleConfiguration
from gatekeeper.domain.emails import DOMAIN_NOT_ALLOWED
from gatekeeper.domain.exceptions import DomainNotConfigured, InvalidDomain, InvalidEmail
from tests.constants import GUILD_ID, ROLE_ID


class TestSet:
    def test_set_normalizes_before_storing(self, ledger: Mock) -> None:
        configuration = DomainRoleConfiguration(ledger)

        stored = configuration.set(GUILD_ID, " @Example.COM", ROLE_ID)

        assert stored == "example.com"
        ledger.set_domain_role.assert_called_once_with(GUILD_ID, "example.com", ROLE_ID)

    def test_set_rejects_invalid_domain(self, ledger: Mock) -> None:
        configuration = DomainRoleConfiguration(ledger)

        with pytest.raises(InvalidDomain):
            configuration.set(GUILD_ID, "not a domain", ROLE_ID)
        ledger.set_domain_role.assert_not_called()


class TestDelete:
    def test_delete_reports_ledger_result(self, ledger: Mock) -> None:
        ledger.delete_domain_role.return_value = False
        configuration = DomainRoleConfiguration(ledger)

        assert configuration.delete(GUILD_ID, "EXAMPLE.com") is False
        ledger.delete_domain_role.assert_called_once_with(GUILD_ID, "example.com")


class TestResolve:
    """Tests for role lookup by email domain."""

    def test_resolve_returns_configured_role(self, ledger: Mock) -> None:
        configuration = DomainRoleConfiguration(ledger)
        assert configuration.resolve(GUILD_ID, "example.com") == ROLE_ID

    def test_resolve_unconfigured_guild(self, ledger: Mock) -> None:
        """A guild with no domains at all is a setup problem, not a bad email."""
        ledger.role_for_domain.return_value = None
        ledger.domain_roles.return_value = {}
        configuration = DomainRoleConfiguration(ledger)

        with pytest.raises(DomainNotConfigured):
            configuration.resolve(GUILD_ID, "example.com")

    def test_resolve_domain_not_allowed(self, ledger: Mock) -> None:
        ledger.role_for_domain.return_value = None
        configuration = DomainRoleConfiguration(ledger)

        with pytest.raises(InvalidEmail) as exc_info:
            configuration.resolve(GUILD_ID, "other.org")
        assert exc_info.value.user_message == DOMAIN_NOT_ALLOWED

    def test_is_configured(self, ledger: Mock) -> None:
        configuration = DomainRoleConfiguration(ledger)
        assert configuration.is_configured(GUILD_ID) is True
        ledger.domain_roles.return_value = {}
        assert configuration.is_configured(GUILD_ID) is False
