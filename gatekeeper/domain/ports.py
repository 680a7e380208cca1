"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure, plus the small value types that cross them.
Adapters implement these protocols.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from .identity import Identifier
from .tokens import Token

StatusCallback = Callable[[str], None]


class IdentityState(str, Enum):
    """
    Verification state of one (guild, identifier) pair.

    State Transitions:
    - UNREGISTERED -> PENDING   (register: token issued)
    - PENDING -> PENDING        (register again: token replaced)
    - PENDING -> VERIFIED       (verify: token consumed, not banned)
    - VERIFIED -> UNREGISTERED  (superseded by a newer binding)
    - any -> BANNED             (ban; only an explicit unban leaves it)

    The state is never stored as a column. It is implied by which ledger
    relation holds a row for the identifier.
    """

    UNREGISTERED = "UNREGISTERED"
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    BANNED = "BANNED"


class CommitStatus(Enum):
    """
    Result of VerificationLedger.commit_verification().
    """

    COMMITTED = "committed"
    TOKEN_GONE = "token_gone"
    BANNED = "banned"


@dataclass(frozen=True)
class TokenClaim:
    """What a live pending token resolves to."""

    identifier: Identifier
    role_id: int


@dataclass(frozen=True)
class Binding:
    """A live verified binding: (guild, identifier) -> (grantee, role)."""

    guild_id: int
    identifier: Identifier
    grantee_id: int
    role_id: int


@dataclass(frozen=True)
class CommitResult:
    """Outcome of a commit plus every binding it removed."""

    status: CommitStatus
    displaced: tuple[Binding, ...] = ()

    @property
    def committed(self) -> bool:
        return self.status is CommitStatus.COMMITTED


class VerificationLedger(Protocol):
    """Port interface for the verification store."""

    def issue_token(
        self, guild_id: int, identifier: Identifier, role_id: int, token: Token
    ) -> None:
        """
        Store a pending token for an identifier.

        Replaces any pending token for the same (guild, identifier), so the
        previous token stops resolving immediately.
        """
        ...

    def resolve_token(self, guild_id: int, token: Token) -> TokenClaim | None:
        """
        Resolve a pending token.

        Returns None for unknown, expired or other-guild tokens alike.
        """
        ...

    def is_banned(self, guild_id: int, identifier: Identifier) -> bool:
        """Return True if the identifier is banned in the guild."""
        ...

    def state_of(self, guild_id: int, identifier: Identifier) -> IdentityState:
        """Return the current state of an identifier (BANNED wins)."""
        ...

    def binding_for(self, guild_id: int, identifier: Identifier) -> Binding | None:
        """Return the live binding for an identifier, if any."""
        ...

    def bindings_for_grantee(self, guild_id: int, grantee_id: int) -> list[Binding]:
        """Return every live binding held by a grantee in the guild."""
        ...

    def commit_verification(
        self, guild_id: int, token: Token, binding: Binding
    ) -> CommitResult:
        """
        Atomically consume the token and store the binding.

        In one transaction:
        1. Delete the token row (must still be live and map to the identifier)
        2. Re-check the ban relation
        3. Delete bindings mapping the identifier to another grantee, or the
           grantee to another identifier
        4. Insert the new binding

        Return values by scenario:
        - COMMITTED: binding stored, ``displaced`` lists removed bindings
        - TOKEN_GONE: token expired or consumed concurrently, nothing stored
        - BANNED: identifier was banned since resolution; the token is
          consumed and no binding is stored
        """
        ...

    def ban(
        self, guild_id: int, identifier: Identifier, grantee_id: int | None = None
    ) -> Binding | None:
        """
        Ban an identifier: delete its binding and pending token, insert a ban.

        Idempotent. Returns the binding that was removed, if any.
        """
        ...

    def unban(self, guild_id: int, identifier: Identifier) -> bool:
        """Remove the ban on an identifier. Returns True if one existed."""
        ...

    def unban_grantee(self, guild_id: int, grantee_id: int) -> int:
        """Remove every ban recorded against a grantee. Returns the count."""
        ...

    def set_domain_role(self, guild_id: int, domain: str, role_id: int) -> None:
        """Insert or replace the role granted for an email domain."""
        ...

    def delete_domain_role(self, guild_id: int, domain: str) -> bool:
        """Delete a domain configuration. Returns True if one existed."""
        ...

    def role_for_domain(self, guild_id: int, domain: str) -> int | None:
        """Return the role configured for a domain, if any."""
        ...

    def domain_roles(self, guild_id: int) -> dict[str, int]:
        """Return every configured domain -> role for the guild."""
        ...

    def purge_expired_tokens(self) -> int:
        """Delete expired pending tokens. Returns the number removed."""
        ...


class RoleGateway(Protocol):
    """
    Port interface for the external role collaborator.

    Both calls are idempotent: granting a held role or revoking a missing
    one is not an error. Failures raise RoleGatewayError.
    """

    def grant_role(self, guild_id: int, grantee_id: int, role_id: int) -> None: ...

    def revoke_role(self, guild_id: int, grantee_id: int, role_id: int) -> None: ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    def send(self, to: str, subject: str, body: str) -> None:
        """
        Deliver a plain-text message.

        Args:
            to: Recipient email address
            subject: Subject line
            body: Plain-text body with ``\\n`` line endings

        Raises:
            EmailDeliveryError: If the message could not be handed off
        """
        ...
