"""
Domain/role configuration - which email domains earn which role per guild.
"""

import logging
from dataclasses import dataclass

from .emails import DOMAIN_NOT_ALLOWED, normalize_domain
from .exceptions import DomainNotConfigured, InvalidEmail
from .ports import VerificationLedger

logger = logging.getLogger(__name__)


@dataclass
class DomainRoleConfiguration:
    """Per-guild allow-list of email domains, each mapped to a role."""

    ledger: VerificationLedger

    def set(self, guild_id: int, domain: str, role_id: int) -> str:
        """
        Allow-list a domain, replacing its role if already configured.

        Returns:
            The normalized domain as stored
        """
        normalized = normalize_domain(domain)
        self.ledger.set_domain_role(guild_id, normalized, role_id)
        logger.info(
            "Domain role set guild=%s domain=%s role=%s", guild_id, normalized, role_id
        )
        return normalized

    def delete(self, guild_id: int, domain: str) -> bool:
        normalized = normalize_domain(domain)
        deleted = self.ledger.delete_domain_role(guild_id, normalized)
        if deleted:
            logger.info("Domain role deleted guild=%s domain=%s", guild_id, normalized)
        return deleted

    def domain_roles(self, guild_id: int) -> dict[str, int]:
        return self.ledger.domain_roles(guild_id)

    def is_configured(self, guild_id: int) -> bool:
        return bool(self.ledger.domain_roles(guild_id))

    def resolve(self, guild_id: int, domain: str) -> int:
        """
        Return the role granted for addresses at ``domain``.

        Raises:
            DomainNotConfigured: Guild has no domains configured at all
            InvalidEmail: Guild is configured but not for this domain
        """
        role_id = self.ledger.role_for_domain(guild_id, domain)
        if role_id is not None:
            return role_id
        if not self.is_configured(guild_id):
            raise DomainNotConfigured()
        raise InvalidEmail(DOMAIN_NOT_ALLOWED)
