"""Claim validation gate for protected endpoints.

Business endpoints call validate_claim() before touching any data. The result
is either ClaimOk(value) or ClaimRejected(reason, status_code, response);
callers branch on the type and return the rejection response untouched.
Only access tokens pass. Pending second-factor and reset tokens are rejected
as invalid.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from api.base import APIResponse, ErrorCodes, error_response
from auth.exceptions import InvalidTokenError
from auth.tokens import TokenIssuer
from auth.types import RequestContext

logger = logging.getLogger(__name__)


class ClaimRejection(str, Enum):
    MISSING_TOKEN = "missing_token"
    INVALID_TOKEN = "invalid_token"
    UNKNOWN_CLAIM = "unknown_claim"
    CLAIM_ABSENT = "claim_absent"
    WRONG_TYPE = "wrong_type"


@dataclass(frozen=True)
class ClaimSpec:
    """Where a claim lives in the token payload and what type it must convert to."""

    payload_key: str
    adapter: TypeAdapter


# Claim name -> payload key + expected type
CLAIM_REGISTRY: dict[str, ClaimSpec] = {
    "user_id": ClaimSpec("sub", TypeAdapter(UUID)),
    "alias": ClaimSpec("alias", TypeAdapter(str)),
    "roles": ClaimSpec("roles", TypeAdapter(list[str])),
    "token_id": ClaimSpec("jti", TypeAdapter(str)),
}


@dataclass(frozen=True)
class ClaimOk:
    value: Any


@dataclass(frozen=True)
class ClaimRejected:
    reason: ClaimRejection
    status_code: int
    response: APIResponse


ClaimResult = ClaimOk | ClaimRejected


_REJECTIONS: dict[ClaimRejection, tuple[int, str, str]] = {
    ClaimRejection.MISSING_TOKEN: (401, ErrorCodes.MISSING_TOKEN, "Authentication required"),
    ClaimRejection.INVALID_TOKEN: (401, ErrorCodes.INVALID_TOKEN, "Invalid or expired token"),
    ClaimRejection.UNKNOWN_CLAIM: (500, ErrorCodes.UNKNOWN_CLAIM, "Unknown claim requested"),
    ClaimRejection.CLAIM_ABSENT: (401, ErrorCodes.CLAIM_ABSENT, "Token is missing a required claim"),
    ClaimRejection.WRONG_TYPE: (401, ErrorCodes.WRONG_TYPE, "Token claim has an unexpected type"),
}


class ClaimValidationGate:
    """Extracts typed claims from the caller's access token. Never mutates state."""

    def __init__(self, token_issuer: TokenIssuer):
        self._tokens = token_issuer

    def _reject(self, reason: ClaimRejection, name: str) -> ClaimRejected:
        status_code, error_type, message = _REJECTIONS[reason]
        return ClaimRejected(
            reason=reason,
            status_code=status_code,
            response=error_response(error_type, message, field=name),
        )

    def validate_claim(self, context: RequestContext, name: str) -> ClaimResult:
        spec = CLAIM_REGISTRY.get(name)
        if spec is None:
            logger.error(f"Claim '{name}' is not registered")
            return self._reject(ClaimRejection.UNKNOWN_CLAIM, name)

        if not context.bearer_token:
            return self._reject(ClaimRejection.MISSING_TOKEN, name)

        try:
            payload = self._tokens.decode_access_payload(context.bearer_token)
        except InvalidTokenError:
            return self._reject(ClaimRejection.INVALID_TOKEN, name)

        if payload.get(spec.payload_key) is None:
            return self._reject(ClaimRejection.CLAIM_ABSENT, name)

        try:
            value = spec.adapter.validate_python(payload[spec.payload_key])
        except PydanticValidationError:
            return self._reject(ClaimRejection.WRONG_TYPE, name)

        return ClaimOk(value=value)
