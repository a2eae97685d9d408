"""
HTTP mapping for domain errors.

``error_status`` picks the status code for a BoardPilotError; the
registered exception handler renders ``to_dict()`` as the response body.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from boardpilot.core.domain.errors import (
    ApiError,
    BoardPilotError,
    ConfigurationError,
    RateLimitError,
    SessionConflictError,
    SessionNotFoundError,
)


def error_status(error: BoardPilotError) -> int:
    if isinstance(error, SessionNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, SessionConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(error, RateLimitError):
        return status.HTTP_429_TOO_MANY_REQUESTS
    if isinstance(error, ApiError):
        return status.HTTP_502_BAD_GATEWAY
    if isinstance(error, ConfigurationError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    return status.HTTP_400_BAD_REQUEST


def _unwrap(error: BoardPilotError) -> BoardPilotError:
    # stage errors keep the Boards failure as their cause
    cause = getattr(error, "cause", None)
    if isinstance(cause, (ApiError, SessionConflictError)):
        return cause
    return error


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(BoardPilotError)
    async def handle_boardpilot_error(request: Request, exc: BoardPilotError) -> JSONResponse:
        return JSONResponse(status_code=error_status(_unwrap(exc)), content=exc.to_dict())

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"error": "ValidationError", "message": str(exc)},
        )
