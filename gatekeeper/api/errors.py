"""
Exception handlers - map domain errors to HTTP responses.

Every VerificationError renders as ``{"detail": <user_message>}``. The
status code depends only on the exception class, so malformed, unknown and
expired tokens are indistinguishable to the caller.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gatekeeper.domain.exceptions import (
    Banned,
    DomainNotConfigured,
    IdentifierClaimed,
    InvalidDomain,
    InvalidEmail,
    LedgerError,
    RoleGrantFailed,
    RoleRevokeFailed,
    TokenInvalidOrExpired,
    VerificationError,
)

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[VerificationError], int] = {
    InvalidEmail: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidDomain: status.HTTP_422_UNPROCESSABLE_ENTITY,
    DomainNotConfigured: status.HTTP_409_CONFLICT,
    IdentifierClaimed: status.HTTP_409_CONFLICT,
    TokenInvalidOrExpired: status.HTTP_401_UNAUTHORIZED,
    Banned: status.HTTP_403_FORBIDDEN,
    RoleGrantFailed: status.HTTP_502_BAD_GATEWAY,
    RoleRevokeFailed: status.HTTP_502_BAD_GATEWAY,
    LedgerError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_code_for(exc: VerificationError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def verification_error_handler(request: Request, exc: VerificationError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(
            "%s on %s %s", type(exc).__name__, request.method, request.url.path, exc_info=exc
        )
    return JSONResponse(status_code=status_code, content={"detail": exc.user_message})


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 without the ``input`` echo, so a rejected address never comes back."""
    errors = [
        {"loc": error.get("loc"), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(errors)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(VerificationError, verification_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
