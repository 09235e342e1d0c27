"""
Error taxonomy for guarded mutations and the JSON handlers that render it.

Every error carries the HTTP status it maps to and a message that is safe
to show to the client. Internal causes are logged server-side only.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class MutationError(Exception):
    """Base class; ``str(exc)`` is sent to the client verbatim."""

    status_code: int = 400
    default_message: str = "Bad Request"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class Unauthorized(MutationError):
    """No valid session on the request."""

    status_code = 401
    default_message = "Unauthorized"


class InvalidInput(MutationError):
    """Missing, mistyped or blank payload."""

    status_code = 400
    default_message = "Invalid content"


class NotFound(MutationError):
    status_code = 404
    default_message = "Not found"


class Forbidden(MutationError):
    """Authenticated, but not the owner of the resource."""

    status_code = 403
    default_message = "Forbidden"


class InternalError(MutationError):
    status_code = 500
    default_message = "Internal Server Error"


class UpstreamError(MutationError):
    """An external identity provider failed or returned garbage."""

    status_code = 502
    default_message = "Authentication provider error"


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def mutation_error_handler(_: Request, exc: Exception) -> JSONResponse:
    status_code = getattr(exc, "status_code", 400)
    return error_response(status_code, str(exc))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, InternalError.default_message)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MutationError, mutation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
