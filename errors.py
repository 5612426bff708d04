"""
Error taxonomy for the storefront API and the FastAPI handlers that render it.

Every failure reaches the client as ``{"success": false, "message": ...}``.
Store errors carry their own HTTP status; anything unexpected becomes a
generic 500 without leaking internals.
"""
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from logging_config import get_logger

logger = get_logger(__name__)


class StoreError(Exception):
    """Base class for every error the aggregates raise on purpose."""

    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Request failed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_response(self):
        return {"success": False, "message": self.message}


class ValidationError(StoreError):
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthError(StoreError):
    http_status = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class NotFound(StoreError):
    http_status = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(StoreError):
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Already exists"


class InvalidState(StoreError):
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "Operation not allowed in the current state"


class InternalError(StoreError):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def register_error_handlers(app: FastAPI) -> None:
    """Register the global error handlers on the FastAPI app."""

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        if exc.http_status >= 500:
            logger.error("store_error", path=request.url.path, error=exc.message)
        else:
            logger.info("request_rejected", path=request.url.path, kind=type(exc).__name__, error=exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "Invalid request"
        if errors:
            first = errors[0]
            field = ".".join(str(loc) for loc in first.get("loc", ()) if loc != "body")
            message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
        logger.info("request_invalid", path=request.url.path, error=message)
        return _failure(status.HTTP_400_BAD_REQUEST, message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message = "Route not found"
        else:
            message = str(exc.detail)
        return _failure(exc.status_code, message)

    @app.exception_handler(PyMongoError)
    async def database_error_handler(request: Request, exc: PyMongoError):
        logger.error("database_error", path=request.url.path, exc_info=exc)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, InternalError.default_message)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("unhandled_error", path=request.url.path, exc_info=exc)
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, InternalError.default_message)
