"""Error kinds raised by the listing services and their HTTP rendering."""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.requests import Request

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ApiError):
    """Missing or malformed input."""
    status_code = 400


class NotFoundError(ApiError):
    status_code = 404


class DuplicateError(ApiError):
    """Name collision on a field that must be unique."""
    status_code = 400


class UpstreamError(ApiError):
    """An outbound service (captcha, CRM, object storage) failed."""
    status_code = 502


def error_body(status_code: int, message: str) -> dict:
    return {"status": status_code, "data": None, "message": message}


async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.status_code, exc.message))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content=error_body(400, message))


async def storage_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=error_body(500, "Internal server error"))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content=error_body(500, "Internal server error"))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(PyMongoError, storage_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
