"""Signed, purpose-tagged tokens (JWT).

Three purposes share one signing key:

- access: {sub, alias, roles} - the only kind that authorizes business endpoints
- second_factor_pending: {sub, chl} - proves a password check passed
- reset: {sub, chl} - redeemable once for a password reset

Every payload carries a "purpose" claim and every decode names the purpose it
expects, so a token is never accepted where a different kind is required.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import jwt

from auth.config import AuthConfig
from auth.exceptions import InvalidTokenError
from auth.types import (
    AccessClaims,
    Credential,
    IssuedToken,
    PendingSecondFactorClaims,
    ResetClaims,
    TokenPurpose,
)
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_REQUIRED_CLAIMS = ["sub", "iat", "exp", "jti", "iss", "aud", "purpose"]


class TokenIssuer:
    """Mints and validates access, pending second-factor and reset tokens."""

    def __init__(self, config: AuthConfig, signing_key: str):
        if not signing_key or len(signing_key) < 32:
            raise ValueError("signing_key must be at least 32 characters")
        self._config = config
        self._key = signing_key

    def _encode(
        self,
        purpose: TokenPurpose,
        user_id: UUID,
        lifetime_minutes: int,
        extra: dict[str, Any],
    ) -> IssuedToken:
        now = now_utc()
        expires_at = now + timedelta(minutes=lifetime_minutes)
        token_id = secrets.token_urlsafe(16)
        payload = {
            "sub": str(user_id),
            "iat": now,
            "exp": expires_at,
            "jti": token_id,
            "iss": self._config.token_issuer,
            "aud": self._config.token_audience,
            "purpose": purpose.value,
            **extra,
        }
        token = jwt.encode(payload, self._key, algorithm=self._config.token_algorithm)
        return IssuedToken(token=token, token_id=token_id, purpose=purpose, expires_at=expires_at)

    def _decode(self, token: str | None, purpose: TokenPurpose) -> dict[str, Any]:
        """Verify signature, expiry, issuer, audience and purpose.

        Raises:
            InvalidTokenError: On any failure.
        """
        if not token:
            raise InvalidTokenError("Token is required", field="token")
        try:
            payload = jwt.decode(
                token,
                self._key,
                algorithms=[self._config.token_algorithm],
                audience=self._config.token_audience,
                issuer=self._config.token_issuer,
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidTokenError("Token has expired", field="token")
        except jwt.InvalidTokenError as e:
            logger.info(f"Rejected {purpose.value} token: {type(e).__name__}")
            raise InvalidTokenError("Invalid token", field="token")

        if payload.get("purpose") != purpose.value:
            logger.info(
                f"Rejected token with purpose {payload.get('purpose')!r}, expected {purpose.value!r}"
            )
            raise InvalidTokenError("Token not valid for this operation", field="token")

        try:
            payload["sub"] = UUID(payload["sub"])
        except (TypeError, ValueError):
            raise InvalidTokenError("Invalid token subject", field="token")
        return payload

    @staticmethod
    def _timestamp(payload: dict[str, Any], claim: str) -> datetime:
        return datetime.fromtimestamp(payload[claim], tz=timezone.utc)

    # -------------------------------------------------------------------------
    # Access tokens
    # -------------------------------------------------------------------------

    def issue_access_token(self, credential: Credential) -> IssuedToken:
        return self._encode(
            TokenPurpose.ACCESS,
            credential.user_id,
            self._config.access_token_expiry_minutes,
            {"alias": credential.alias, "roles": list(credential.roles)},
        )

    def decode_access_payload(self, token: str | None) -> dict[str, Any]:
        """Raw validated access-token payload, for claim lookup by name."""
        return self._decode(token, TokenPurpose.ACCESS)

    def decode_access_token(self, token: str | None) -> AccessClaims:
        payload = self.decode_access_payload(token)
        return AccessClaims(
            user_id=payload["sub"],
            alias=payload.get("alias", ""),
            roles=payload.get("roles", []),
            token_id=payload["jti"],
            issued_at=self._timestamp(payload, "iat"),
            expires_at=self._timestamp(payload, "exp"),
        )

    # -------------------------------------------------------------------------
    # Pending second-factor tokens
    # -------------------------------------------------------------------------

    def issue_pending_token(self, challenge_id: str, user_id: UUID) -> IssuedToken:
        return self._encode(
            TokenPurpose.SECOND_FACTOR_PENDING,
            user_id,
            self._config.pending_token_expiry_minutes,
            {"chl": challenge_id},
        )

    def decode_pending_token(self, token: str | None) -> PendingSecondFactorClaims:
        payload = self._decode(token, TokenPurpose.SECOND_FACTOR_PENDING)
        if not payload.get("chl"):
            raise InvalidTokenError("Invalid token", field="token")
        return PendingSecondFactorClaims(
            user_id=payload["sub"],
            challenge_id=payload["chl"],
            token_id=payload["jti"],
            expires_at=self._timestamp(payload, "exp"),
        )

    # -------------------------------------------------------------------------
    # Reset tokens
    # -------------------------------------------------------------------------

    def issue_reset_token(self, challenge_id: str, user_id: UUID) -> IssuedToken:
        return self._encode(
            TokenPurpose.RESET,
            user_id,
            self._config.reset_token_expiry_minutes,
            {"chl": challenge_id},
        )

    def decode_reset_token(self, token: str | None) -> ResetClaims:
        payload = self._decode(token, TokenPurpose.RESET)
        if not payload.get("chl"):
            raise InvalidTokenError("Invalid token", field="token")
        return ResetClaims(
            user_id=payload["sub"],
            challenge_id=payload["chl"],
            token_id=payload["jti"],
            expires_at=self._timestamp(payload, "exp"),
        )
