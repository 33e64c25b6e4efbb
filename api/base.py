"""Unified API response format and error handling."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from utils.timezone import now_utc


class APIError(BaseModel):
    """Error details in API response."""

    type: str = Field(..., description="Machine-readable error type")
    field: str = Field(default="", description="Input field the error refers to, if any")
    message: str = Field(..., description="Human-readable error message")


class APIMeta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Unique request identifier for tracing")


class APIResponse(BaseModel):
    """
    Unified response format for all API endpoints.

    Every endpoint returns this structure, making client parsing predictable.
    Failures always have data=None and at least one entry in errors.
    """

    success: bool
    message: str = ""
    data: Any | None = None
    errors: list[APIError] = Field(default_factory=list)
    meta: APIMeta


def _meta(request_id: str | None) -> APIMeta:
    return APIMeta(timestamp=now_utc(), request_id=request_id or str(uuid4()))


def success_response(
    data: Any, message: str = "OK", request_id: str | None = None
) -> APIResponse:
    """Create a success response."""
    return APIResponse(
        success=True,
        message=message,
        data=data,
        errors=[],
        meta=_meta(request_id),
    )


def error_response(
    error_type: str,
    message: str,
    field: str = "",
    errors: list[APIError] | None = None,
    request_id: str | None = None,
) -> APIResponse:
    """Create an error response.

    Pass `errors` to report several entries (e.g. one per policy violation);
    otherwise a single entry is built from error_type/field/message.
    """
    return APIResponse(
        success=False,
        message=message,
        data=None,
        errors=errors or [APIError(type=error_type, field=field, message=message)],
        meta=_meta(request_id),
    )


class ErrorCodes:
    """
    Error types for failures raised outside the auth services.

    Auth failures carry their own type on the exception class
    (see auth/exceptions.py).
    """

    VALIDATION = "Validation"
    NOT_FOUND = "NotFound"
    SYSTEM = "System"

    # Claim gate rejections
    MISSING_TOKEN = "MissingToken"
    INVALID_TOKEN = "InvalidToken"
    UNKNOWN_CLAIM = "UnknownClaim"
    CLAIM_ABSENT = "ClaimAbsent"
    WRONG_TYPE = "WrongType"
