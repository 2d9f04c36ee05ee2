"""Error normalization and handlers.

Every failure leaves the API in the same envelope:
``{"success": false, "error": <message>, "code": <code>, "request_id": <rid>}``
with a ``stack`` field added outside production.
"""

import builtins
import logging
import re
import traceback
from typing import Optional
from uuid import uuid4

import jwt
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DataError, IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from presskit.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class BadRequestError(AppError, ValueError):
    code = "bad_request"
    status_code = 400


class UnauthorizedError(AppError):
    code = "unauthorized"
    status_code = 401


class PermissionError(AppError, builtins.PermissionError):
    code = "forbidden"
    status_code = 403


class NotFoundError(AppError, LookupError):
    code = "not_found"
    status_code = 404


class PayloadTooLargeError(AppError):
    code = "payload_too_large"
    status_code = 413


class RateLimitError(AppError):
    code = "rate_limited"
    status_code = 429


class ExternalServiceError(AppError):
    """A third-party call failed; the caller only sees a fixed message."""
    code = "external_service_error"
    status_code = 500


class ServiceUnavailableError(AppError):
    code = "service_unavailable"
    status_code = 503


_SQLITE_UNIQUE = re.compile(r"UNIQUE constraint failed: \w+\.(\w+)")
_POSTGRES_KEY = re.compile(r"Key \((\w+)\)=")
_CONSTRAINT_NAME = re.compile(r'constraint "uq_\w+?_(\w+)"')


def duplicate_field(exc: IntegrityError) -> Optional[str]:
    """Name the column behind a unique-constraint violation, if recognisable."""
    text = str(getattr(exc, "orig", None) or exc)
    for pattern in (_SQLITE_UNIQUE, _POSTGRES_KEY, _CONSTRAINT_NAME):
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def duplicate_value_message(field: str) -> str:
    return f"Duplicate field value entered: {field}. Please use another value"


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _include_stack(request: Request) -> bool:
    settings = getattr(request.app.state, "settings", None)
    return settings is not None and not settings.is_production


def _error_response(request: Request, status_code: int, code: str, message: str, exc: Optional[BaseException] = None, rid: Optional[str] = None) -> JSONResponse:
    rid = rid or _extract_request_id(request)
    payload = {"success": False, "error": message, "code": code, "request_id": rid}
    if exc is not None and _include_stack(request):
        payload["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    response = JSONResponse(status_code=status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    logger = logging.getLogger("presskit")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    return _error_response(request, exc.status_code, exc.code, exc.message, exc, rid)


def _validation_message(error: dict) -> str:
    msg = error.get("msg", "Invalid value")
    if error.get("type") == "value_error":
        return msg.removeprefix("Value error, ")
    loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(loc)
    return f"{field}: {msg}" if field else msg


async def validation_error_handler(request: Request, exc: RequestValidationError):
    message = ", ".join(_validation_message(err) for err in exc.errors())
    logging.getLogger("presskit").warning("validation.error", extra={"error_message": message})
    return _error_response(request, 400, "validation_error", message, exc)


async def integrity_error_handler(request: Request, exc: IntegrityError):
    field = duplicate_field(exc)
    logger = logging.getLogger("presskit")
    if field is None:
        logger.error("db.integrity_error", exc_info=exc)
        return _error_response(request, 400, "integrity_error", "Invalid data", exc)
    logger.warning("db.duplicate_value", extra={"field": field})
    return _error_response(request, 400, "duplicate_value", duplicate_value_message(field), exc)


async def data_error_handler(request: Request, exc: DataError):
    logging.getLogger("presskit").warning("db.data_error")
    return _error_response(request, 404, "not_found", "Resource not found", exc)


async def token_error_handler(request: Request, exc: jwt.PyJWTError):
    message = "Token expired" if isinstance(exc, jwt.ExpiredSignatureError) else "Invalid token"
    logging.getLogger("presskit").warning("auth.token_rejected", extra={"error_message": message})
    return _error_response(request, 401, "unauthorized", message, exc)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    logging.getLogger("presskit").warning("http.error", extra={"error_code": code, "status": exc.status_code})
    response = _error_response(request, exc.status_code, code, str(message))
    for key, value in (getattr(exc, "headers", None) or {}).items():
        response.headers[key] = value
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("presskit")
    logger.error("unhandled.exception", exc_info=exc, extra={"request_id": rid, "error_code": "internal_error"})
    return _error_response(request, 500, "internal_error", "Server Error", exc, rid)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(DataError, data_error_handler)
    app.add_exception_handler(jwt.PyJWTError, token_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
