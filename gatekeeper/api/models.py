"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.

Email fields are plain strings on purpose: address validation happens in the
domain layer, whose errors never echo the submitted address.
"""

from typing import Annotated

from pydantic import BaseModel, Field

Snowflake = Annotated[int, Field(gt=0, description="Discord snowflake ID")]


class RegisterRequest(BaseModel):
    """Request model for the register command."""

    grantee_id: Snowflake
    email: str = Field(..., min_length=3, max_length=320, description="Email address to verify")
    interaction_token: str | None = Field(
        None,
        max_length=512,
        description="Discord interaction token; when set, the reply is edited with the delivery status",
    )


class RegisterResponse(BaseModel):
    """Response model for the register command."""

    message: str
    status: str
    expires_in_seconds: int


class VerifyRequest(BaseModel):
    """Request model for the verify command."""

    grantee_id: Snowflake
    token: str = Field(..., min_length=1, max_length=64, description="Token from the email")


class VerifyResponse(BaseModel):
    """Response model for a successful verification."""

    message: str
    role_id: int


class BanRequest(BaseModel):
    """Request model for banning a verified member."""

    grantee_id: Snowflake


class EmailBanRequest(BaseModel):
    """Request model for banning or unbanning an address directly."""

    email: str = Field(..., min_length=3, max_length=320)


class DomainRoleRequest(BaseModel):
    """Request model for allow-listing a domain."""

    role_id: Snowflake


class DomainRole(BaseModel):
    domain: str
    role_id: int


class DomainRolesResponse(BaseModel):
    guild_id: int
    domains: list[DomainRole]


class IdentifiersResponse(BaseModel):
    """Response model for the whois admin lookup."""

    grantee_id: int
    identifiers: list[str]


class MessageResponse(BaseModel):
    """Human-readable result for the dispatcher to render."""

    message: str


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
