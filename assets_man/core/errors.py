from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .responses import error_response

logger = logging.getLogger("assets_man.errors")


class ErrorCode(str, Enum):
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    EMAIL_EXISTS = "EMAIL_EXISTS"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    UNAUTHORIZED = "UNAUTHORIZED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_STATUS: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_CREDENTIALS: 401,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.INVALID_TOKEN: 401,
    ErrorCode.TOKEN_EXPIRED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.USER_NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.EMAIL_EXISTS: 409,
    ErrorCode.QUOTA_EXCEEDED: 413,
    ErrorCode.INTERNAL_ERROR: 500,
}

_HTTP_STATUS_CODES: dict[int, ErrorCode] = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    413: ErrorCode.QUOTA_EXCEEDED,
}


class ApiError(Exception):
    """An error already shaped for the response envelope."""

    def __init__(self, code: ErrorCode, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    @property
    def status_code(self) -> int:
        return ERROR_STATUS[self.code]


class ServiceError(Exception):
    """Raised by domain services. ``token`` names what went wrong, e.g. ``FOLDER_NOT_FOUND``."""

    def __init__(self, token: str, details: dict[str, Any] | None = None):
        super().__init__(token)
        self.token = token
        self.details = details


ErrorMapping = dict[str, tuple[ErrorCode, str]]


@contextmanager
def service_errors(mapping: ErrorMapping, fallback: str) -> Iterator[None]:
    """Translate service failures raised inside the block into :class:`ApiError`.

    Tokens present in ``mapping`` become the mapped code/message. Anything
    else, including storage and database failures, is logged and reported as
    a generic ``INTERNAL_ERROR`` carrying ``fallback``.
    """
    try:
        yield
    except (ApiError, StarletteHTTPException):
        raise
    except ServiceError as exc:
        if exc.token in mapping:
            code, message = mapping[exc.token]
            raise ApiError(code, message, exc.details) from exc
        logger.error("Unmapped service error: %s", exc.token)
        raise ApiError(ErrorCode.INTERNAL_ERROR, fallback) from exc
    except Exception as exc:
        logger.exception(fallback)
        raise ApiError(ErrorCode.INTERNAL_ERROR, fallback) from exc


async def _api_error_handler(request: Request, exc: ApiError):
    return error_response(exc.code.value, exc.message, exc.status_code, exc.details)


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    details: dict[str, list[str]] = {}
    for issue in exc.errors():
        field = ".".join(str(part) for part in issue.get("loc", ()) if part not in ("body", "query", "path"))
        details.setdefault(field or "request", []).append(issue.get("msg", "Invalid value"))
    return error_response(ErrorCode.VALIDATION_ERROR.value, "Validation failed", 400, details)


async def _http_error_handler(request: Request, exc: StarletteHTTPException):
    code = _HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error_response(code.value, message, exc.status_code)


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(ErrorCode.INTERNAL_ERROR.value, "Internal server error", 500)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
