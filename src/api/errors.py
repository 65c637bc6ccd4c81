"""
Exception handlers - Translate domain failures into the response envelope.

Domain errors never cross the API boundary as raw faults: each AuthError
subclass maps to a status code and its human-readable message. Storage
outages and unexpected exceptions become a generic server error.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.domain.exceptions import (
    AccountDisabled,
    AlreadyRegistered,
    AuthError,
    DispatchFailed,
    EmailNotVerified,
    InvalidCredentials,
    InvalidToken,
    NoPendingLogin,
    OtpError,
    OtpRateLimited,
    PasswordTooLong,
    StorageUnavailable,
    UsernameTaken,
)

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"

# Looked up along the exception's MRO, most specific class first
STATUS_BY_ERROR: dict[type[AuthError], int] = {
    InvalidCredentials: status.HTTP_401_UNAUTHORIZED,
    InvalidToken: status.HTTP_401_UNAUTHORIZED,
    AccountDisabled: status.HTTP_403_FORBIDDEN,
    EmailNotVerified: status.HTTP_403_FORBIDDEN,
    AlreadyRegistered: status.HTTP_409_CONFLICT,
    UsernameTaken: status.HTTP_409_CONFLICT,
    OtpError: status.HTTP_400_BAD_REQUEST,
    NoPendingLogin: status.HTTP_400_BAD_REQUEST,
    PasswordTooLong: status.HTTP_400_BAD_REQUEST,
    OtpRateLimited: status.HTTP_429_TOO_MANY_REQUESTS,
    DispatchFailed: status.HTTP_503_SERVICE_UNAVAILABLE,
    StorageUnavailable: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(error: AuthError) -> int:
    for cls in type(error).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return status.HTTP_400_BAD_REQUEST


def envelope(message: str, data: object = None) -> dict:
    return {"success": False, "message": message, "data": data}


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    status_code = status_for(exc)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, InvalidToken) else None
    if isinstance(exc, StorageUnavailable):
        logger.error("Storage unavailable while handling %s", request.url.path)
        return JSONResponse(status_code=status_code, content=envelope(GENERIC_ERROR_MESSAGE))
    return JSONResponse(status_code=status_code, content=envelope(exc.message), headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report field errors as {field: message} inside the envelope."""
    errors: dict[str, str] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"] if part != "body")
        errors[field or "body"] = error["msg"]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_encoder(envelope("Validation failed", errors)),
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error while handling %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=envelope(GENERIC_ERROR_MESSAGE),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
