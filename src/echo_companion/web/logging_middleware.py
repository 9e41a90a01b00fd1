"""
FastAPI middleware for request/trace ID correlation and structured logging.
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from ..core.logging import (
    clear_request_context,
    generate_request_id,
    generate_trace_id,
    get_logger,
    set_request_context,
)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Tags every request with correlation ids and logs its outcome."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.logger = get_logger("echo.web.access")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Reuse ids from an upstream proxy when present
        request_id = request.headers.get("x-request-id") or generate_request_id()
        trace_id = request.headers.get("x-trace-id") or generate_trace_id()
        set_request_context(request_id=request_id, trace_id=trace_id)

        self.logger.debug(
            "Request started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        start_time = time.time()
        try:
            response: Response = await call_next(request)

            duration_ms = (time.time() - start_time) * 1000
            self.logger.log_api_request(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
            )

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Trace-ID"] = trace_id
            return response

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self.logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                duration_ms=duration_ms,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        finally:
            clear_request_context()
