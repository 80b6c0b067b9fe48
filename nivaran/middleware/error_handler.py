"""
Error Handler Middleware.

Last line of the HTTP surface. Escalation calls never raise by design, so what
arrives here is a ledger outage or a programming error. The client gets a
short JSON body with an error_id that also appears in the log line; provider
credentials and stack traces stay server-side.
"""

import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from nivaran.common.exceptions import LedgerError, NivaranError

logger = structlog.get_logger(__name__)

# (exception type, status, client message); first match wins
ERROR_RESPONSES: tuple[tuple[type, int, str], ...] = (
    (LedgerError, 503, "Escalation history is temporarily unavailable."),
    (NivaranError, 502, "An escalation dependency failed."),
)
DEFAULT_ERROR = (500, "An internal error occurred. Please try again later.")


def classify(exc: Exception) -> tuple[int, str]:
    for exc_type, status_code, message in ERROR_RESPONSES:
        if isinstance(exc, exc_type):
            return status_code, message
    return DEFAULT_ERROR


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns unhandled exceptions into `{error, error_id, status}` responses."""

    def __init__(self, app: ASGIApp, debug: bool = False):
        super().__init__(app)
        self._debug = debug

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            error_id = uuid.uuid4().hex
            status_code, message = classify(exc)

            logger.exception(
                "request_failed",
                error_id=error_id,
                status=status_code,
                method=request.method,
                path=request.url.path,
                error_type=type(exc).__name__,
            )

            body: dict = {"error": message, "error_id": error_id, "status": status_code}
            if self._debug:
                body["error_type"] = type(exc).__name__
            return JSONResponse(status_code=status_code, content=body)
