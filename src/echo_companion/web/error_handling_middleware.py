"""
Error handling for the chat API.

Domain errors are rendered as ``{"error": message}`` with a status taken
from their type; anything unexpected becomes a generic 500.
"""

from typing import Callable, Dict, Type

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.exceptions import (
    ConfigurationError,
    EchoError,
    InvalidInput,
    UpstreamUnavailable,
)
from ..core.logging import get_logger
from ..services.error_messages import ServiceErrorMessages

logger = get_logger(__name__)

STATUS_BY_ERROR: Dict[Type[EchoError], int] = {
    InvalidInput: 400,
    UpstreamUnavailable: 500,
    ConfigurationError: 500,
}


def status_for(error: EchoError) -> int:
    for error_type in type(error).__mro__:
        if error_type in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[error_type]  # type: ignore[index]
    return 500


def error_response(error: EchoError) -> JSONResponse:
    return JSONResponse(status_code=status_for(error), content={"error": error.message})


async def echo_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, EchoError)
    status_code = status_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "Request rejected",
        path=request.url.path,
        status_code=status_code,
        error=exc.message,
        error_code=exc.error_code,
        component=exc.component,
    )
    return error_response(exc)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turns unhandled exceptions into ``500 {"error": ...}``."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            response: Response = await call_next(request)
            return response
        except Exception as e:
            logger.error(
                "Unexpected error occurred",
                error_type=type(e).__name__,
                error_message=str(e),
                path=request.url.path,
                method=request.method,
            )
            return JSONResponse(
                status_code=500,
                content={"error": ServiceErrorMessages.REQUEST_FAILED},
            )


def install_error_handling(app: FastAPI) -> None:
    app.add_exception_handler(EchoError, echo_error_handler)
    app.add_middleware(ErrorHandlingMiddleware)
