"""
Verification domain service - register, verify and ban.

This module contains the core business logic for granting a Discord role
to a member who proves they receive mail at an allow-listed domain.

Identity State Machine (per guild, identifier)
==============================================

States:
- UNREGISTERED: no pending token, no binding
- PENDING: a token has been mailed and not yet redeemed
- VERIFIED: a binding maps the identifier to one member and role
- BANNED: identifier may not verify again until unbanned

Transitions:
    UNREGISTERED -> PENDING   register (token issued)
    PENDING -> PENDING        register again (old token stops resolving)
    PENDING -> VERIFIED       verify (role granted, then ledger committed)
    VERIFIED -> UNREGISTERED  another member verifies the same identifier,
                              or the holder verifies a different identifier
    any -> BANNED             ban

Ordering rules enforced here:
- The ban check runs after token resolution, so an attacker without a
  valid token cannot tell banned addresses from unknown ones.
- The ledger is committed only after the external role grant succeeds.
  Roles of displaced bindings are revoked after the commit.
- A Verify that loses a commit race revokes the role it just granted,
  unless the member still legitimately holds it.
"""

import logging
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from .configuration import DomainRoleConfiguration
from .delivery import DeliveryDispatcher
from .emails import email_domain, normalize_email, validate_address
from .exceptions import (
    Banned,
    IdentifierClaimed,
    LedgerError,
    RoleGatewayError,
    RoleGrantFailed,
    RoleRevokeFailed,
    TokenInvalidOrExpired,
)
from .identity import Identifier, IdentityHasher, identifier_text
from .ports import (
    Binding,
    CommitStatus,
    IdentityState,
    RoleGateway,
    StatusCallback,
    VerificationLedger,
)
from .tokens import Token, TokenIssuer

logger = logging.getLogger(__name__)

REGISTRATION_SUBJECT = "Gatekeeper verification"

SENDING_MESSAGE = "⌛ Sending email..."
WELCOME_BACK_MESSAGE = "Welcome back, you have been verified."
VERIFIED_MESSAGE = "Congrats! You've been verified!"
SUPERSEDED_NOTICE = (
    "Your email was also used to verify <@{grantee_id}>. "
    "That account has been unverified."
)


class ClaimPolicy(str, Enum):
    """
    What happens when a member verifies an identifier another member holds.

    SUPERSEDE unverifies the previous holder. REJECT refuses the new claim.
    """

    SUPERSEDE = "supersede"
    REJECT = "reject"


class RegisterStatus(Enum):
    SENDING = "sending"
    WELCOME_BACK = "welcome_back"


class BanStatus(Enum):
    BANNED = "banned"
    NOT_VERIFIED = "not_verified"


@dataclass(frozen=True)
class RegisterResult:
    """
    Immediate answer to a register call.

    ``delivery`` is set when an email was queued; it resolves to True once
    the message was handed off.
    """

    status: RegisterStatus
    message: str
    delivery: Future[bool] | None = None


@dataclass(frozen=True)
class VerifyOutcome:
    message: str
    binding: Binding
    displaced: tuple[Binding, ...] = ()
    unrevoked: tuple[Binding, ...] = ()


@dataclass(frozen=True)
class BanOutcome:
    status: BanStatus
    message: str
    bindings: tuple[Binding, ...] = ()


def format_registration_email(token: Token) -> str:
    return f"Greetings from Gatekeeper!\n\nYour verification token is: {token.text}"


@dataclass
class VerificationEngine:
    """
    Domain service for email-domain role verification.

    Orchestrates identifier derivation, token issue, ledger transitions,
    mail delivery and the external role collaborator.
    """

    ledger: VerificationLedger
    roles: RoleGateway
    dispatcher: DeliveryDispatcher
    hasher: IdentityHasher = field(default_factory=IdentityHasher)
    issuer: TokenIssuer = field(default_factory=TokenIssuer)
    claim_policy: ClaimPolicy = ClaimPolicy.SUPERSEDE
    role_call_attempts: int = 3
    role_call_backoff_seconds: float = 0.5
    role_call_max_wait_seconds: float = 10.0
    configuration: DomainRoleConfiguration = field(init=False)

    def __post_init__(self) -> None:
        self.configuration = DomainRoleConfiguration(self.ledger)

    def register(
        self,
        guild_id: int,
        grantee_id: int,
        raw_email: str,
        on_status: StatusCallback | None = None,
    ) -> RegisterResult:
        """
        Begin verification by mailing a token to ``raw_email``.

        Args:
            guild_id: Guild the member wants a role in
            grantee_id: Member issuing the command
            raw_email: Address as typed (will be normalized)
            on_status: Called with a delivery status text once the send ends

        Returns:
            RegisterResult with the immediate message for the member

        Raises:
            DomainNotConfigured: Guild has no allow-listed domains
            InvalidEmail: Bad format, alias, or domain not allow-listed
            RoleGrantFailed: Welcome-back re-grant failed
        """
        email = normalize_email(raw_email)
        role_id = self.configuration.resolve(guild_id, email_domain(email))
        validate_address(email)
        identifier = self.hasher.derive(guild_id, email)

        binding = self.ledger.binding_for(guild_id, identifier)
        if binding is not None and binding.grantee_id == grantee_id:
            self._grant(binding)
            logger.info("Welcome back guild=%s grantee=%s", guild_id, grantee_id)
            return RegisterResult(RegisterStatus.WELCOME_BACK, WELCOME_BACK_MESSAGE)

        token = self.issuer.mint()
        self.ledger.issue_token(guild_id, identifier, role_id, token)
        delivery = self.dispatcher.submit(
            email, REGISTRATION_SUBJECT, format_registration_email(token), on_status
        )
        logger.info(
            "Verification token issued guild=%s grantee=%s role=%s",
            guild_id,
            grantee_id,
            role_id,
        )
        return RegisterResult(RegisterStatus.SENDING, SENDING_MESSAGE, delivery)

    def verify(self, guild_id: int, grantee_id: int, token_text: str) -> VerifyOutcome:
        """
        Redeem a token and grant the configured role.

        Raises:
            MalformedToken: Token text cannot be parsed
            TokenInvalidOrExpired: Unknown, expired or already redeemed token
            Banned: Identifier behind the token is banned
            IdentifierClaimed: Another member holds it (reject policy only)
            RoleGrantFailed: Role could not be granted; nothing was committed
            LedgerError: Commit failed; the grant has been undone
        """
        token = self.issuer.parse(token_text)
        claim = self.ledger.resolve_token(guild_id, token)
        if claim is None:
            raise TokenInvalidOrExpired()

        if self.ledger.is_banned(guild_id, claim.identifier):
            logger.info("Verify refused, banned guild=%s grantee=%s", guild_id, grantee_id)
            raise Banned()

        if self.claim_policy is ClaimPolicy.REJECT:
            holder = self.ledger.binding_for(guild_id, claim.identifier)
            if holder is not None and holder.grantee_id != grantee_id:
                raise IdentifierClaimed()

        binding = Binding(guild_id, claim.identifier, grantee_id, claim.role_id)
        self._grant(binding)

        try:
            result = self.ledger.commit_verification(guild_id, token, binding)
        except LedgerError:
            self._compensate(binding)
            raise
        if not result.committed:
            self._compensate(binding)
            if result.status is CommitStatus.BANNED:
                raise Banned()
            raise TokenInvalidOrExpired()

        notices = [VERIFIED_MESSAGE]
        unrevoked = []
        for old in result.displaced:
            if old.grantee_id == grantee_id and old.role_id == binding.role_id:
                continue
            try:
                self._revoke(old)
            except RoleRevokeFailed:
                logger.error(
                    "Superseded role left in place guild=%s grantee=%s role=%s",
                    old.guild_id,
                    old.grantee_id,
                    old.role_id,
                )
                unrevoked.append(old)
                continue
            if old.grantee_id != grantee_id:
                notices.append(SUPERSEDED_NOTICE.format(grantee_id=old.grantee_id))

        logger.info(
            "Verified guild=%s grantee=%s role=%s displaced=%d",
            guild_id,
            grantee_id,
            binding.role_id,
            len(result.displaced),
        )
        return VerifyOutcome(
            message="\n".join(notices),
            binding=binding,
            displaced=result.displaced,
            unrevoked=tuple(unrevoked),
        )

    def ban(self, guild_id: int, grantee_id: int) -> BanOutcome:
        """
        Ban every identifier a member is verified with.

        Each identifier: revoke role, then delete binding and record ban.
        A revoke failure stops the loop; identifiers already processed stay
        banned and the call can simply be repeated.

        The grantee's bindings are read again after each pass, so a Verify
        that commits while the ban is running is banned too.

        Raises:
            RoleRevokeFailed: A role could not be removed
        """
        pending = self.ledger.bindings_for_grantee(guild_id, grantee_id)
        if not pending:
            return BanOutcome(
                BanStatus.NOT_VERIFIED, f"Error: user <@{grantee_id}> not verified"
            )

        banned: list[Binding] = []
        seen: set[Identifier] = set()
        while pending:
            for binding in pending:
                self._revoke(binding)
                self.ledger.ban(guild_id, binding.identifier, grantee_id)
                seen.add(binding.identifier)
                banned.append(binding)
            pending = [
                binding
                for binding in self.ledger.bindings_for_grantee(guild_id, grantee_id)
                if binding.identifier not in seen
            ]

        logger.info(
            "Banned guild=%s grantee=%s identifiers=%d", guild_id, grantee_id, len(banned)
        )
        return BanOutcome(
            BanStatus.BANNED,
            f"Success! User <@{grantee_id}> was banned.",
            tuple(banned),
        )

    def unban(self, guild_id: int, grantee_id: int) -> str:
        """Lift every ban recorded against a member. They must verify again."""
        count = self.ledger.unban_grantee(guild_id, grantee_id)
        if count == 0:
            return f"Error: user <@{grantee_id}> is not banned"
        logger.info("Unbanned guild=%s grantee=%s identifiers=%d", guild_id, grantee_id, count)
        return f"Success! User <@{grantee_id}> was unbanned."

    def ban_email(self, guild_id: int, raw_email: str) -> str:
        """
        Ban an address directly, whether or not anyone verified with it.

        A live binding for the address is revoked first.
        """
        email = normalize_email(raw_email)
        validate_address(email)
        identifier = self.hasher.derive(guild_id, email)
        if self.ledger.state_of(guild_id, identifier) is IdentityState.BANNED:
            return "Error: that email address is already banned"

        binding = self.ledger.binding_for(guild_id, identifier)
        if binding is not None:
            self._revoke(binding)
        self.ledger.ban(
            guild_id, identifier, binding.grantee_id if binding is not None else None
        )
        logger.info("Address banned guild=%s had_binding=%s", guild_id, binding is not None)
        return "Success! That email address was banned."

    def unban_email(self, guild_id: int, raw_email: str) -> str:
        email = normalize_email(raw_email)
        validate_address(email)
        identifier = self.hasher.derive(guild_id, email)
        if not self.ledger.unban(guild_id, identifier):
            return "Error: that email address is not banned"
        logger.info("Address unbanned guild=%s", guild_id)
        return "Success! That email address was unbanned."

    def whois(self, guild_id: int, grantee_id: int) -> list[str]:
        """Identifiers (base64) a member is currently verified with."""
        return [
            identifier_text(binding.identifier)
            for binding in self.ledger.bindings_for_grantee(guild_id, grantee_id)
        ]

    def _grant(self, binding: Binding) -> None:
        try:
            self._call_role_gateway(self.roles.grant_role, binding)
        except RoleGatewayError as exc:
            raise RoleGrantFailed() from exc

    def _revoke(self, binding: Binding) -> None:
        try:
            self._call_role_gateway(self.roles.revoke_role, binding)
        except RoleGatewayError as exc:
            raise RoleRevokeFailed() from exc

    def _compensate(self, binding: Binding) -> None:
        """Undo a grant whose ledger commit lost, unless the role is still owed."""
        try:
            held = self.ledger.bindings_for_grantee(binding.guild_id, binding.grantee_id)
        except LedgerError:
            logger.error(
                "Ledger unavailable during compensation, revoking guild=%s grantee=%s role=%s",
                binding.guild_id,
                binding.grantee_id,
                binding.role_id,
            )
            held = []
        if any(b.role_id == binding.role_id for b in held):
            return
        try:
            self._revoke(binding)
        except RoleRevokeFailed:
            logger.error(
                "Could not undo role grant after lost commit guild=%s grantee=%s role=%s",
                binding.guild_id,
                binding.grantee_id,
                binding.role_id,
            )

    def _role_call_wait(self) -> Callable[[RetryCallState], float]:
        """Exponential jittered backoff, stretched to honor a server Retry-After."""
        backoff = wait_random_exponential(
            multiplier=self.role_call_backoff_seconds, max=self.role_call_max_wait_seconds
        )

        def wait(retry_state: RetryCallState) -> float:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            hinted = getattr(exc, "retry_after", None) or 0.0
            return max(backoff(retry_state), min(hinted, self.role_call_max_wait_seconds))

        return wait

    def _log_role_call_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Role call failed attempt=%d/%d, retrying: %s",
            retry_state.attempt_number,
            self.role_call_attempts,
            exc,
        )

    def _call_role_gateway(
        self, call: Callable[[int, int, int], None], binding: Binding
    ) -> None:
        retrying = Retrying(
            stop=stop_after_attempt(max(1, self.role_call_attempts)),
            retry=retry_if_exception(
                lambda exc: isinstance(exc, RoleGatewayError) and exc.retryable
            ),
            wait=self._role_call_wait(),
            before_sleep=self._log_role_call_retry,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                call(binding.guild_id, binding.grantee_id, binding.role_id)
