from __future__ import annotations

import logging

from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import JSONResponse

from spinwick.services.errors import (
    ConfigurationException,
    IntegrityException,
    NotFoundException,
    SpinWickException,
    TerminalFailure,
    WaitTimeout,
)

logger = logging.getLogger(__name__)

# Looked up along the exception's MRO, so subclasses inherit their parent's status.
STATUS_BY_ERROR: dict[type[SpinWickException], int] = {
    NotFoundException: 404,
    IntegrityException: 409,
    TerminalFailure: 502,
    WaitTimeout: 504,
    ConfigurationException: 500,
}


def status_for(exc: SpinWickException) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500


def _domain_error_response(request: Request, exc: SpinWickException) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed with %s: %s", request.method, request.url.path, status, exc, exc_info=exc)
    else:
        logger.info("%s %s rejected with %s: %s", request.method, request.url.path, status, exc)
    return JSONResponse({"detail": str(exc)}, status_code=status)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SpinWickException, _domain_error_response)
