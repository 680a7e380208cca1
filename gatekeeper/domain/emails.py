"""
Email address policy - normalization and validation before hashing.

The identity hash cannot undo formatting differences, so every address is
normalized and checked here before an identifier is derived.
"""

import re

from email_validator import EmailNotValidError, validate_email

from .exceptions import InvalidDomain, InvalidEmail

MAX_DOMAIN_LENGTH = 255

FORMAT_INVALID = "Email address format is invalid."
ALIAS_NOT_ALLOWED = "Email address must not be an alias."
DOMAIN_NOT_ALLOWED = "Email addresses from that domain are not accepted on this server."

_LABEL = r"[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?"
_HOSTNAME = re.compile(rf"^{_LABEL}(?:\.{_LABEL})+$")


def normalize_email(email: str) -> str:
    """
    Normalize email address for consistent hashing and lookup.

    Applies: strip whitespace + lowercase
    """
    return email.strip().lower()


def email_domain(email: str) -> str:
    """Return the part after the last ``@``."""
    local, sep, domain = email.rpartition("@")
    if not sep or not local or not domain:
        raise InvalidEmail(FORMAT_INVALID)
    return domain


def validate_address(email: str) -> None:
    """
    Check a normalized address is a single bare mailbox without a tag.

    Raises:
        InvalidEmail: Bad format or plus-addressing alias
    """
    try:
        result = validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        # the library message can echo the address
        raise InvalidEmail(FORMAT_INVALID) from None

    if "+" in result.local_part:
        raise InvalidEmail(ALIAS_NOT_ALLOWED)


def normalize_domain(domain: str) -> str:
    """
    Normalize an admin-supplied allow-list domain.

    Strips whitespace and a leading ``@``, lower-cases, truncates to 255
    characters.

    Raises:
        InvalidDomain: Result is not a dotted hostname
    """
    normalized = domain.strip().lower().lstrip("@")[:MAX_DOMAIN_LENGTH]
    if not _HOSTNAME.match(normalized):
        raise InvalidDomain()
    return normalized
