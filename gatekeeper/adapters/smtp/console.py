"""
Console email sender adapter - Implements EmailSender protocol.

This module provides a console-based implementation of the domain's
email sender port, logging messages to stdout for development.
"""

import logging

logger = logging.getLogger(__name__)


def redact_address(address: str) -> str:
    """Keep the first character of the local part and the domain: a***@example.com."""
    local, sep, domain = address.rpartition("@")
    if not sep or not local:
        return "***"
    return f"{local[0]}***@{domain}"


class ConsoleEmailSender:
    """
    Implements EmailSender protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - prints messages (tokens included) to stdout.
    """

    def send(self, to: str, subject: str, body: str) -> None:
        """
        Log the message to console (simulates email delivery).

        In production, this is replaced with SmtpEmailSender.
        The message is logged at INFO level to be visible in docker-compose logs.
        The recipient is redacted; the body is logged so the token can be copied.

        Args:
            to: Recipient email address (normalized by domain layer)
            subject: Subject line
            body: Plain-text body
        """
        logger.info(
            "[VERIFICATION] To: %s Subject: %s\n%s", redact_address(to), subject, body
        )
