"""
Centralized mapping from domain errors to HTTP responses.

Routes raise domain exceptions and stay thin; this module decides the status
code and the message the caller sees. Hard failures get a generic message so
no internal detail leaks.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple, Type

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..domain.exceptions import (
    CalendarError,
    Forbidden,
    InvalidInput,
    InvalidTransition,
    NotFound,
    PersistenceError,
    SlotbookError,
    SlotUnavailable,
    Unauthorized,
)

logger = logging.getLogger(__name__)

STATUS_BAD_REQUEST = 400
STATUS_UNAUTHORIZED = 401
STATUS_FORBIDDEN = 403
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_INTERNAL_ERROR = 500

MSG_INTERNAL_ERROR = "Internal server error"


# (exception type, status code, fixed message or None to use the exception text).
# First match wins; add new rules here instead of scattering checks in routes.
ERROR_RULES: List[Tuple[Type[SlotbookError], int, Optional[str]]] = [
    (InvalidInput, STATUS_BAD_REQUEST, None),
    (Unauthorized, STATUS_UNAUTHORIZED, "Unauthorized"),
    (Forbidden, STATUS_FORBIDDEN, None),
    (NotFound, STATUS_NOT_FOUND, None),
    (SlotUnavailable, STATUS_CONFLICT, None),
    (InvalidTransition, STATUS_CONFLICT, None),
    (PersistenceError, STATUS_INTERNAL_ERROR, MSG_INTERNAL_ERROR),
    (CalendarError, STATUS_INTERNAL_ERROR, MSG_INTERNAL_ERROR),
]


def error_to_response(exc: SlotbookError) -> JSONResponse:
    """Map a domain error onto a JSON error response."""
    for error_type, status_code, message in ERROR_RULES:
        if isinstance(exc, error_type):
            if status_code >= STATUS_INTERNAL_ERROR:
                logger.error("Request failed: %s", exc, exc_info=exc)
            return JSONResponse(
                status_code=status_code,
                content={"error": message or str(exc)},
            )
    logger.error("Unhandled domain error: %s", exc, exc_info=exc)
    return JSONResponse(status_code=STATUS_INTERNAL_ERROR, content={"error": MSG_INTERNAL_ERROR})


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SlotbookError)
    async def handle_domain_error(request: Request, exc: SlotbookError) -> JSONResponse:
        return error_to_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=STATUS_BAD_REQUEST, content={"error": "Invalid request"})

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unexpected error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=STATUS_INTERNAL_ERROR, content={"error": MSG_INTERNAL_ERROR})
