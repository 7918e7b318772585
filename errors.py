"""Domain errors and their mapping onto HTTP responses.

Every error leaves the API as ``{"message": ...}`` (validation errors add an
``errors`` list). Anything unexpected is logged with its traceback and
answered with a generic 500 so a single request can never take the process
down.
"""

import logging
from typing import Any, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.errors = errors


class NoChangesProvided(ValidationError):
    message = "No changes provided"


class InvalidCredentials(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid credentials"


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authentication required"

    def __init__(self, message: Optional[str] = None, clear_cookie: bool = False):
        super().__init__(message)
        self.clear_cookie = clear_cookie


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    message = "Resource already exists"


class InvalidOrExpiredToken(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid or expired token"


class UploadRejected(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Upload rejected"


class StorageError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Storage service unavailable"


class InternalError(AppError):
    pass


def _body(message: str, errors: Optional[List[Any]] = None) -> dict:
    body = {"message": message}
    if errors is not None:
        body["errors"] = jsonable_encoder(errors)
    return body


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    response = JSONResponse(
        status_code=exc.status_code,
        content=_body(exc.message, getattr(exc, "errors", None)),
    )
    if isinstance(exc, Unauthenticated) and exc.clear_cookie:
        response.delete_cookie(
            settings.SESSION_COOKIE_NAME,
            path="/",
            secure=settings.secure_cookies,
            httponly=True,
            samesite="lax",
        )
    return response


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_body("Invalid request data", exc.errors()),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=_body(detail),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_body(InternalError.message),
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
