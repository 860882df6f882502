"""
Exception to HTTP response mapping.

Domain errors carry caller-facing messages and map to 4xx statuses. Anything
else is logged with its traceback and answered with a generic 500 body that
reveals no internals.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rankboard.core.exceptions import RankboardInfrastructureException
from rankboard.core.logging.logger import get_logger
from rankboard.modules.shared.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ErrorSeverity,
    NotFoundError,
    RankboardDomainException,
    ValidationError,
    get_error_severity,
    should_alert,
)

logger = get_logger(__name__)

SERVER_ERROR_MESSAGE = "Server Error"

_STATUS_BY_EXCEPTION: Dict[type, int] = {
    ValidationError: 400,
    AuthenticationError: 401,
    AuthorizationError: 403,
    NotFoundError: 404,
    ConflictError: 409,
}

_LOG_LEVEL_BY_SEVERITY: Dict[ErrorSeverity, int] = {
    ErrorSeverity.DEBUG: logging.DEBUG,
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


def status_for(exc: RankboardDomainException) -> int:
    for exc_type, status_code in _STATUS_BY_EXCEPTION.items():
        if isinstance(exc, exc_type):
            return status_code
    return 400


def _log_level(exc: BaseException) -> int:
    return _LOG_LEVEL_BY_SEVERITY.get(get_error_severity(exc), logging.ERROR)


def _log_fields(exc: Any) -> Dict[str, Any]:
    # "message" is reserved on LogRecord.
    fields = exc.to_dict()
    fields["error_message"] = fields.pop("message", None)
    return fields


def _error_body(message: str, **extra: Any) -> Dict[str, Any]:
    return {"success": False, "message": message, **extra}


async def domain_exception_handler(
    request: Request, exc: RankboardDomainException
) -> JSONResponse:
    status_code = status_for(exc)
    logger.log(
        _log_level(exc),
        "Request rejected",
        extra={"status_code": status_code, **_log_fields(exc)},
        exc_info=exc if should_alert(exc) else None,
    )
    return JSONResponse(status_code=status_code, content=_error_body(exc.message))


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors: List[Dict[str, str]] = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
            "message": str(error.get("msg", "Invalid value")),
        }
        for error in exc.errors()
    ]
    logger.info("Request validation failed", extra={"errors": errors})
    return JSONResponse(
        status_code=400,
        content=_error_body("Invalid request", errors=errors),
    )


async def infrastructure_exception_handler(
    request: Request, exc: RankboardInfrastructureException
) -> JSONResponse:
    logger.log(
        _log_level(exc),
        "Infrastructure failure while handling request",
        extra={"alert": should_alert(exc), **_log_fields(exc)},
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content=_error_body(SERVER_ERROR_MESSAGE))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error while handling request",
        extra={"error": str(exc), "error_type": type(exc).__name__},
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content=_error_body(SERVER_ERROR_MESSAGE))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RankboardDomainException, domain_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(
        RankboardInfrastructureException, infrastructure_exception_handler
    )
    app.add_exception_handler(Exception, unhandled_exception_handler)
