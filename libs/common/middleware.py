"""Request context middleware for the FastAPI apps.

Adds an X-Request-ID to every response and logs request timing.

Usage:
    from libs.common.middleware import add_observability_middleware

    app = FastAPI()
    add_observability_middleware(app)
"""
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from libs.common.logging import (
    clear_request_context,
    configure_logging,
    get_logger,
    set_request_context,
)

logger = get_logger(__name__)

QUIET_PATHS = {"/health"}


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds a request id to the logging context and logs each request once."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = set_request_context(
            request_id=request.headers.get("X-Request-ID"),
            path=request.url.path,
            method=request.method,
        )
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

            if request.url.path not in QUIET_PATHS:
                log = logger.warning if response.status_code >= 400 else logger.info
                log(
                    "%s %s -> %s (%sms)",
                    request.method,
                    request.url.path,
                    response.status_code,
                    duration_ms,
                    extra={"extra_fields": {
                        "status_code": response.status_code,
                        "duration_ms": duration_ms,
                    }},
                )

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            logger.exception(
                "Unhandled error on %s %s",
                request.method,
                request.url.path,
                extra={"extra_fields": {
                    "error": str(e),
                    "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
                }},
            )
            raise

        finally:
            clear_request_context()


def add_observability_middleware(app: FastAPI) -> None:
    """Configure logging and install the request context middleware."""
    configure_logging()
    app.add_middleware(RequestContextMiddleware)
