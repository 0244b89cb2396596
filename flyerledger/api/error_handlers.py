"""Error Handlers: JSON error envelopes for a FastAPI application hosting the ledger.

Invariants:
    - LedgerError → its own http_status and to_response() body
    - Retryable errors (DatabaseError, ConcurrencyError) carry Retry-After
    - RequestValidationError → 400 with one entry per offending field
    - Anything else → 500 with a fixed message; the exception text never reaches the client
    - Log level follows the error's severity

Design Decisions:
    - Module-level handlers registered with add_exception_handler: the host app
      calls register_error_handlers(app) once, the handlers stay importable for tests
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from flyerledger.core.errors import ErrorCategory, ErrorSeverity, LedgerError

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = "1"

_LOG_LEVELS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LedgerError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    logger.log(
        _LOG_LEVELS[exc.severity],
        f"{request.method} {request.url.path}: {exc.message}",
        extra={"error_code": exc.code, **exc.context.keys()},
    )
    headers = {"Retry-After": RETRY_AFTER_SECONDS} if exc.retryable else None
    return JSONResponse(
        status_code=exc.http_status, content=exc.to_response(), headers=headers,
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    logger.warning(
        f"{request.method} {request.url.path}: invalid request",
        extra={"error_code": "VALIDATION_ERROR"},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_envelope(
            "VALIDATION_ERROR", "Invalid request data",
            ErrorCategory.VALIDATION, ErrorSeverity.ERROR, details=details,
        ),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"{request.method} {request.url.path}: unhandled {type(exc).__name__}",
        exc_info=exc,
        extra={"error_code": "INTERNAL_ERROR"},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(
            "INTERNAL_ERROR", "An unexpected error occurred",
            ErrorCategory.INTERNAL, ErrorSeverity.CRITICAL,
        ),
    )


def _envelope(
    code: str, message: str, category: ErrorCategory, severity: ErrorSeverity, **extra,
) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "category": category.value,
            "severity": severity.value,
            "retryable": False,
            **extra,
        },
    }
