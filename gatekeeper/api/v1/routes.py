"""
API v1 routes.

Defines the REST endpoints the command dispatcher calls on behalf of guild
members and admins. Handlers are plain ``def`` functions: identifier
derivation is CPU-bound and the ledger is synchronous, so FastAPI runs them
in its threadpool.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, status

from gatekeeper.adapters.discord.interactions import DiscordInteractionNotifier
from gatekeeper.api.dependencies import (
    get_domain_configuration,
    get_interaction_notifier,
    get_verification_engine,
    require_dispatcher_key,
)
from gatekeeper.api.models import (
    BanRequest,
    DomainRole,
    DomainRoleRequest,
    DomainRolesResponse,
    EmailBanRequest,
    ErrorResponse,
    IdentifiersResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    VerifyRequest,
    VerifyResponse,
)
from gatekeeper.config.settings import Settings, get_settings
from gatekeeper.domain.configuration import DomainRoleConfiguration
from gatekeeper.domain.verification import VerificationEngine

router = APIRouter(
    prefix="/guilds/{guild_id}",
    tags=["v1"],
    dependencies=[Depends(require_dispatcher_key)],
    responses={
        401: {"model": ErrorResponse, "description": "Invalid dispatcher key"},
        503: {"model": ErrorResponse, "description": "Ledger unavailable"},
    },
)

GuildId = Annotated[int, Path(gt=0, description="Discord guild ID")]
MemberId = Annotated[int, Path(gt=0, description="Discord member ID")]
DomainName = Annotated[str, Path(max_length=512)]


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        409: {"model": ErrorResponse, "description": "Guild has no domains configured"},
        422: {"model": ErrorResponse, "description": "Invalid or disallowed email"},
        502: {"model": ErrorResponse, "description": "Role grant failed"},
    },
    summary="Register an email address",
    description="Mail a verification token to an address at an allow-listed domain. "
    "The response does not wait for delivery.",
)
def register(
    request_data: RegisterRequest,
    guild_id: GuildId,
    engine: VerificationEngine = Depends(get_verification_engine),
    notifier: DiscordInteractionNotifier | None = Depends(get_interaction_notifier),
    settings: Settings = Depends(get_settings),
) -> RegisterResponse:
    """
    Start verification for a member.

    - **grantee_id**: Member issuing the command
    - **email**: Address to verify
    - **interaction_token**: Optional; the original reply is edited with the
      delivery status once the email job ends
    """
    on_status = None
    if notifier is not None and request_data.interaction_token:
        on_status = notifier.for_interaction(request_data.interaction_token)

    result = engine.register(guild_id, request_data.grantee_id, request_data.email, on_status)
    return RegisterResponse(
        message=result.message,
        status=result.status.value,
        expires_in_seconds=settings.token_ttl_seconds,
    )


@router.post(
    "/verify",
    response_model=VerifyResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Token incorrect or expired"},
        403: {"model": ErrorResponse, "description": "Email address banned"},
        409: {"model": ErrorResponse, "description": "Email address claimed by another member"},
        502: {"model": ErrorResponse, "description": "Role grant failed"},
    },
    summary="Redeem a verification token",
)
def verify(
    request_data: VerifyRequest,
    guild_id: GuildId,
    engine: VerificationEngine = Depends(get_verification_engine),
) -> VerifyResponse:
    outcome = engine.verify(guild_id, request_data.grantee_id, request_data.token)
    return VerifyResponse(message=outcome.message, role_id=outcome.binding.role_id)


@router.post(
    "/bans",
    response_model=MessageResponse,
    responses={502: {"model": ErrorResponse, "description": "Role revoke failed"}},
    summary="Ban a verified member",
    description="Revoke the role of every address the member verified with and ban them. "
    "A member who is not verified gets an error message, not an error status.",
)
def ban_member(
    request_data: BanRequest,
    guild_id: GuildId,
    engine: VerificationEngine = Depends(get_verification_engine),
) -> MessageResponse:
    outcome = engine.ban(guild_id, request_data.grantee_id)
    return MessageResponse(message=outcome.message)


@router.delete(
    "/bans/{grantee_id}",
    response_model=MessageResponse,
    summary="Unban a member",
)
def unban_member(
    guild_id: GuildId,
    grantee_id: MemberId,
    engine: VerificationEngine = Depends(get_verification_engine),
) -> MessageResponse:
    return MessageResponse(message=engine.unban(guild_id, grantee_id))


@router.post(
    "/banned-emails",
    response_model=MessageResponse,
    responses={
        422: {"model": ErrorResponse, "description": "Invalid email"},
        502: {"model": ErrorResponse, "description": "Role revoke failed"},
    },
    summary="Ban an email address",
)
def ban_email(
    request_data: EmailBanRequest,
    guild_id: GuildId,
    engine: VerificationEngine = Depends(get_verification_engine),
) -> MessageResponse:
    return MessageResponse(message=engine.ban_email(guild_id, request_data.email))


@router.delete(
    "/banned-emails",
    response_model=MessageResponse,
    responses={422: {"model": ErrorResponse, "description": "Invalid email"}},
    summary="Unban an email address",
)
def unban_email(
    request_data: EmailBanRequest,
    guild_id: GuildId,
    engine: VerificationEngine = Depends(get_verification_engine),
) -> MessageResponse:
    return MessageResponse(message=engine.unban_email(guild_id, request_data.email))


@router.get(
    "/domains",
    response_model=DomainRolesResponse,
    summary="List allow-listed domains",
)
def list_domains(
    guild_id: GuildId,
    configuration: DomainRoleConfiguration = Depends(get_domain_configuration),
) -> DomainRolesResponse:
    domains = configuration.domain_roles(guild_id)
    return DomainRolesResponse(
        guild_id=guild_id,
        domains=[DomainRole(domain=d, role_id=r) for d, r in sorted(domains.items())],
    )


@router.put(
    "/domains/{domain}",
    response_model=DomainRole,
    responses={422: {"model": ErrorResponse, "description": "Invalid domain"}},
    summary="Allow-list a domain",
)
def set_domain(
    request_data: DomainRoleRequest,
    guild_id: GuildId,
    domain: DomainName,
    configuration: DomainRoleConfiguration = Depends(get_domain_configuration),
) -> DomainRole:
    stored = configuration.set(guild_id, domain, request_data.role_id)
    return DomainRole(domain=stored, role_id=request_data.role_id)


@router.delete(
    "/domains/{domain}",
    response_model=MessageResponse,
    responses={422: {"model": ErrorResponse, "description": "Invalid domain"}},
    summary="Remove a domain from the allow-list",
)
def delete_domain(
    guild_id: GuildId,
    domain: DomainName,
    configuration: DomainRoleConfiguration = Depends(get_domain_configuration),
) -> MessageResponse:
    if configuration.delete(guild_id, domain):
        return MessageResponse(message="Success! Domain was removed.")
    return MessageResponse(message="Error: domain is not configured")


@router.get(
    "/members/{grantee_id}/identifiers",
    response_model=IdentifiersResponse,
    summary="List identifiers a member verified with",
)
def whois(
    guild_id: GuildId,
    grantee_id: MemberId,
    engine: VerificationEngine = Depends(get_verification_engine),
) -> IdentifiersResponse:
    return IdentifiersResponse(
        grantee_id=grantee_id, identifiers=engine.whois(guild_id, grantee_id)
    )
