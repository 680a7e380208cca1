"""
Domain exceptions - Semantic error types for verification.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.

Every VerificationError carries a generic ``user_message`` that is safe to
show to the person who issued the command. User messages never contain a
raw email address or token value.
"""


class VerificationError(Exception):
    """Base class for verification domain errors."""

    user_message: str = "Sorry, an error has occurred."

    def __init__(self, user_message: str | None = None) -> None:
        if user_message is not None:
            self.user_message = user_message
        super().__init__(self.user_message)


class InvalidEmail(VerificationError):
    """Bad address format, plus-address alias, or domain not allow-listed."""

    user_message = "Email address format is invalid."


class InvalidDomain(VerificationError):
    """Administrator supplied something that is not an email domain."""

    user_message = "That is not a valid email domain."


class DomainNotConfigured(VerificationError):
    """Guild has no allow-listed email domain yet."""

    user_message = (
        "Email verification has not been set up on this server yet. "
        "Please ask an administrator."
    )


class TokenInvalidOrExpired(VerificationError):
    """Token unknown, expired, superseded, or already consumed."""

    user_message = "Your token is incorrect or has expired."


class MalformedToken(TokenInvalidOrExpired):
    """
    Token text has the wrong length or alphabet.

    Subclasses TokenInvalidOrExpired so both render identically to the user.
    """


class Banned(VerificationError):
    """Identifier is banned in this guild."""

    user_message = "You are unable to verify with this email address."


class IdentifierClaimed(VerificationError):
    """Identifier already verified by another member (reject claim policy)."""

    user_message = "This email address is already in use on this server."


class RoleGrantFailed(VerificationError):
    """Role collaborator could not grant the verification role."""

    user_message = "Sorry, your role could not be assigned. Please try again later."


class RoleRevokeFailed(VerificationError):
    """Role collaborator could not revoke a verification role."""

    user_message = "Sorry, a role could not be removed. Please try again later."


class LedgerError(VerificationError):
    """Storage failure; the original cause is chained for operators."""


class RoleGatewayError(Exception):
    """
    Raised by RoleGateway adapters when a grant or revoke call fails.

    ``retryable`` marks transient faults (timeouts, rate limits, 5xx).
    ``retry_after`` carries the server's backoff hint in seconds, if any.
    """

    def __init__(
        self, message: str, *, retryable: bool = False, retry_after: float | None = None
    ) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.retry_after = retry_after


class EmailDeliveryError(Exception):
    """Raised by EmailSender adapters when a message could not be handed off."""
