"""Auth boundary: runs a service call and turns its result into a response.

Every AuthError becomes the uniform failure payload for its type. Anything
else is logged with full detail and reported as a generic system error.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from pydantic import BaseModel

from api.base import APIError, APIResponse, error_response, success_response
from auth.exceptions import (
    AuthError,
    PolicyError,
    RateLimitedError,
    UnexpectedError,
)
from auth.login import LoginService
from auth.recovery import RecoveryService
from auth.types import RequestContext

logger = logging.getLogger(__name__)


@dataclass
class AuthOutcome:
    """HTTP-ready result of an auth operation."""

    status_code: int
    body: APIResponse
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.body.success


def failure_outcome(error: AuthError, request_id: str | None = None) -> AuthOutcome:
    """Build the failure payload for an AuthError."""
    if isinstance(error, UnexpectedError):
        # Internal detail stays in the logs
        message = UnexpectedError.public_message
    else:
        message = str(error)

    errors = None
    if isinstance(error, PolicyError):
        errors = [
            APIError(type=error.error_type, field=error.field, message=violation)
            for violation in error.violations
        ]

    headers = {}
    if isinstance(error, RateLimitedError):
        headers["Retry-After"] = str(error.retry_after_seconds)

    return AuthOutcome(
        status_code=error.status_code,
        body=error_response(
            error.error_type,
            message,
            field=error.field,
            errors=errors,
            request_id=request_id,
        ),
        headers=headers,
    )


class AuthOrchestrator:
    """Single entry point the HTTP layer uses for login and recovery."""

    def __init__(self, login_service: LoginService, recovery_service: RecoveryService):
        self._login = login_service
        self._recovery = recovery_service

    def _run(
        self,
        operation: str,
        call: Callable[[], BaseModel],
        message: str,
        request_id: str | None,
    ) -> AuthOutcome:
        try:
            result = call()
        except AuthError as e:
            if isinstance(e, UnexpectedError):
                logger.error(f"{operation} failed: {e}")
            else:
                logger.info(f"{operation} rejected: {e.error_type}")
            return failure_outcome(e, request_id)
        except Exception:
            logger.exception(f"{operation} failed unexpectedly")
            return failure_outcome(UnexpectedError(), request_id)

        return AuthOutcome(
            status_code=200,
            body=success_response(
                result.model_dump(mode="json", by_alias=True),
                message=message,
                request_id=request_id,
            ),
        )

    def login(
        self,
        identifier: str,
        secret: str,
        context: RequestContext,
        request_id: str | None = None,
    ) -> AuthOutcome:
        return self._run(
            "login",
            lambda: self._login.validate_login(identifier, secret, context),
            "Login accepted",
            request_id,
        )

    def verify_second_factor(
        self,
        challenge_id: str,
        code: str,
        context: RequestContext,
        channel: str = "",
        request_id: str | None = None,
    ) -> AuthOutcome:
        """The bearer token on the context, if any, is treated as the pending token."""
        return self._run(
            "second_factor_verify",
            lambda: self._login.verify_second_factor(
                challenge_id,
                code,
                context,
                pending_token=context.bearer_token,
                channel=channel,
            ),
            "Second factor verified",
            request_id,
        )

    def recovery_start(
        self,
        identifier: str,
        context: RequestContext,
        request_id: str | None = None,
    ) -> AuthOutcome:
        return self._run(
            "recovery_start",
            lambda: self._recovery.recovery_start(identifier, context),
            "If the account exists, a verification code has been sent",
            request_id,
        )

    def recovery_verify_otp(
        self,
        challenge_id: str,
        code: str,
        context: RequestContext,
        channel: str = "",
        request_id: str | None = None,
    ) -> AuthOutcome:
        return self._run(
            "recovery_verify_otp",
            lambda: self._recovery.recovery_verify_otp(challenge_id, code, context, channel),
            "Code verified",
            request_id,
        )

    def recovery_reset_password(
        self,
        new_secret: str,
        context: RequestContext,
        request_id: str | None = None,
    ) -> AuthOutcome:
        """The reset token is the bearer token on the context."""
        return self._run(
            "recovery_reset_password",
            lambda: self._recovery.recovery_reset_password(
                context.bearer_token, new_secret, context
            ),
            "Password updated",
            request_id,
        )
