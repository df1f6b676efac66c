"""Global exception handlers producing a consistent error envelope.

Every error response has the shape::

    {"success": false, "error": {"code": "...", "message": "...", ...}}
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from libs.common.errors import AppError
from libs.common.logging import get_logger

logger = get_logger(__name__)


def error_response(status_code: int, error: dict, headers: dict | None = None):
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error},
        headers=headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.expected:
        logger.info(
            "%s on %s: %s", exc.code, request.url.path, exc.message,
            extra={"extra_fields": {"code": exc.code, "reason": exc.reason}},
        )
    else:
        logger.warning(
            "%s on %s: %s", exc.code, request.url.path, exc.message,
            extra={"extra_fields": {"code": exc.code, "reason": exc.reason}},
        )
    return error_response(exc.status_code, exc.to_dict())


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        fields.append(
            {
                "field": ".".join(loc),
                "message": err.get("msg", "Invalid value"),
                "type": err.get("type"),
            }
        )
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        {
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed",
            "fields": fields,
        },
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return error_response(
        exc.status_code,
        {"code": f"HTTP_{exc.status_code}", "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


def add_exception_handlers(app: FastAPI) -> None:
    """Register the global exception handlers on an app."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
