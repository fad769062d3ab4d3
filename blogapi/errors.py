"""
Error taxonomy and the JSON envelope for failed requests.

Every error leaves the API as::

    {"success": false, "error": "<message>", "details": [...]}

``details`` is only present when there is something field-level to
report (validation failures, the field behind a unique-key conflict).
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(HTTPException):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, details: list | None = None, headers=None):
        super().__init__(
            status_code=self.status_code,
            detail=message or self.default_message,
            headers=headers,
        )
        self.details = details


class BadRequest(AppError):
    status_code = 400
    default_message = "Bad request"


class Unauthenticated(AppError):
    status_code = 401
    default_message = "Not authorized to access this route"

    def __init__(self, message: str | None = None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(AppError):
    status_code = 403
    default_message = "Not authorized to access this resource"


class NotFound(AppError):
    status_code = 404
    default_message = "Resource not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Resource already exists"

    def __init__(self, message: str | None = None, field: str | None = None):
        details = [{"field": field, "message": message}] if field else None
        super().__init__(message, details=details)
        self.field = field


def error_body(message: str, details: list | None = None) -> dict:
    body = {"success": False, "error": message}
    if details:
        body["details"] = details
    return body


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), getattr(exc, "details", None)),
        headers=exc.headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=422, content=error_body("Validation failed", details))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body("Internal server error"))


def install_error_handlers(app: FastAPI) -> None:
    # Registering against Starlette's base class also covers routing 404/405s.
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
