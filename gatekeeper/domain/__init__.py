"""
Domain layer - Pure business logic with zero framework imports.

This package contains the core business logic for email-domain role
verification. It defines its own port interfaces for infrastructure
abstraction, ensuring true hexagonal architecture decoupling.
"""

from .configuration import DomainRoleConfiguration
from .delivery import DeliveryDispatcher
from .exceptions import (
    Banned,
    DomainNotConfigured,
    EmailDeliveryError,
    IdentifierClaimed,
    InvalidDomain,
    InvalidEmail,
    LedgerError,
    MalformedToken,
    RoleGatewayError,
    RoleGrantFailed,
    RoleRevokeFailed,
    TokenInvalidOrExpired,
    VerificationError,
)
from .identity import Identifier, IdentityHasher
from .ports import (
    Binding,
    CommitResult,
    CommitStatus,
    EmailSender,
    IdentityState,
    RoleGateway,
    TokenClaim,
    VerificationLedger,
)
from .tokens import Token, TokenIssuer
from .verification import ClaimPolicy, VerificationEngine

__all__ = [
    "Banned",
    "Binding",
    "ClaimPolicy",
    "CommitResult",
    "CommitStatus",
    "DeliveryDispatcher",
    "DomainNotConfigured",
    "DomainRoleConfiguration",
    "EmailDeliveryError",
    "EmailSender",
    "IdentifierClaimed",
    "Identifier",
    "IdentityHasher",
    "IdentityState",
    "InvalidDomain",
    "InvalidEmail",
    "LedgerError",
    "MalformedToken",
    "RoleGateway",
    "RoleGatewayError",
    "RoleGrantFailed",
    "RoleRevokeFailed",
    "Token",
    "TokenClaim",
    "TokenInvalidOrExpired",
    "TokenIssuer",
    "VerificationEngine",
    "VerificationError",
    "VerificationLedger",
]
