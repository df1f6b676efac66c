"""Request tracing middleware for the booking API.

Every request gets an ``X-Request-ID`` (taken from the caller when present)
that is bound to the logging context, echoed on the response and carried
into published booking events.
"""
import time
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from libs.common.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)

logger = get_logger(__name__)

# Requests slower than this are logged at WARNING
SLOW_REQUEST_MS = 1000.0

QUIET_PATHS = frozenset({"/health"})


def _user_id(request: Request) -> Optional[str]:
    user = getattr(request.state, "user", None)
    return getattr(user, "user_id", None)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds the request ID and logs one line per finished request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_request_context(
            request_id=request.headers.get("X-Request-ID"),
            path=request.url.path,
            method=request.method,
        )
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "%s %s raised",
                request.method,
                request.url.path,
                extra={
                    "extra_fields": {
                        "error": str(e),
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    }
                },
            )
            raise
        else:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            if request.url.path not in QUIET_PATHS:
                slow = duration_ms >= SLOW_REQUEST_MS
                log = logger.warning if response.status_code >= 500 or slow else logger.info
                log(
                    "%s %s -> %d in %.0fms",
                    request.method,
                    request.url.path,
                    response.status_code,
                    duration_ms,
                    extra={
                        "extra_fields": {
                            "status_code": response.status_code,
                            "duration_ms": duration_ms,
                            "user_id": _user_id(request),
                            "slow": slow,
                        }
                    },
                )
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            clear_request_context()


def add_observability_middleware(app: FastAPI) -> None:
    """Configure logging and install request tracing on an app."""
    configure_logging()
    app.add_middleware(RequestContextMiddleware)
