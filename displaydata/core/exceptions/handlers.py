import logging
import uuid
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api_exceptions import APIException, ValidationException

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """Handle custom API exceptions"""
    content = {
        "success": False,
        "message": exc.message,
        "error_code": exc.error_code,
        "correlation_id": exc.correlation_id,
        "timestamp": exc.timestamp,
        "detail": exc.detail if exc.detail != exc.message else None
    }
    if isinstance(exc, ValidationException) and exc.errors:
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle standard HTTP exceptions"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.detail,
            "error_code": f"HTTP_{exc.status_code}",
            "correlation_id": str(uuid.uuid4()),
            "timestamp": _now()
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request body and query parameter validation errors"""
    errors = {}
    for error in exc.errors():
        # Drop the leading 'body' / 'query' location prefix
        field = ".".join(str(loc) for loc in error["loc"][1:]) or str(error["loc"][0])
        errors[field] = error["msg"]

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "Validation failed",
            "error_code": "VALIDATION_ERROR",
            "correlation_id": str(uuid.uuid4()),
            "timestamp": _now(),
            "errors": errors
        }
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions"""
    correlation_id = str(uuid.uuid4())
    logger.error(
        f"Unexpected error [{correlation_id}] on {request.method} {request.url.path}: {exc}",
        exc_info=exc
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "An unexpected error occurred",
            "error_code": "INTERNAL_ERROR",
            "correlation_id": correlation_id,
            "timestamp": _now()
        }
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register the shared error envelope on an application."""
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
