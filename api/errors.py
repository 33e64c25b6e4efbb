"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from api.base import APIError, error_response, ErrorCodes

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = [
            APIError(
                type=ErrorCodes.VALIDATION,
                field=".".join(str(part) for part in err.get("loc", ())[1:]),
                message=err.get("msg", "Invalid value"),
            )
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=error_response(
                ErrorCodes.VALIDATION,
                "Invalid request",
                errors=errors,
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        error_type = ErrorCodes.NOT_FOUND if exc.status_code == 404 else ErrorCodes.VALIDATION
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(
                error_type,
                str(exc.detail),
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.SYSTEM,
                "An internal error occurred",
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )
