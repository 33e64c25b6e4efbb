"""HTTP routes for authentication and recovery."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from auth.orchestrator import AuthOrchestrator, AuthOutcome
from auth.security_middleware import get_request_context
from auth.types import (
    LoginRequest,
    RecoveryStartRequest,
    ResetPasswordRequest,
    VerifyCodeRequest,
)


def _to_response(outcome: AuthOutcome) -> JSONResponse:
    return JSONResponse(
        status_code=outcome.status_code,
        headers=outcome.headers or None,
        content=outcome.body.model_dump(mode="json"),
    )


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def create_auth_router(orchestrator: AuthOrchestrator) -> APIRouter:
    """Create auth router with injected orchestrator."""
    router = APIRouter(tags=["auth"])

    @router.post("/login")
    def login(request: Request, body: LoginRequest):
        """Check identifier + secret.

        Returns either an access token, or a challenge id and pending token
        when a second factor is required.
        """
        outcome = orchestrator.login(
            identifier=body.identifier,
            secret=body.secret,
            context=get_request_context(request),
            request_id=_request_id(request),
        )
        return _to_response(outcome)

    @router.post("/second-factor/verify")
    def verify_second_factor(request: Request, body: VerifyCodeRequest):
        """Exchange the emailed code for an access token.

        The pending token from /login may be sent as a bearer token.
        """
        outcome = orchestrator.verify_second_factor(
            challenge_id=body.challenge_id,
            code=body.code,
            context=get_request_context(request),
            request_id=_request_id(request),
        )
        return _to_response(outcome)

    @router.post("/recovery/start")
    def recovery_start(request: Request, body: RecoveryStartRequest):
        """Send a recovery code. Same response whether or not the account exists."""
        outcome = orchestrator.recovery_start(
            identifier=body.identifier,
            context=get_request_context(request),
            request_id=_request_id(request),
        )
        return _to_response(outcome)

    @router.post("/recovery/verify-otp")
    def recovery_verify_otp(request: Request, body: VerifyCodeRequest):
        """Exchange a recovery code for a single-use reset token."""
        outcome = orchestrator.recovery_verify_otp(
            challenge_id=body.challenge_id,
            code=body.code,
            context=get_request_context(request),
            request_id=_request_id(request),
        )
        return _to_response(outcome)

    @router.post("/recovery/reset-password")
    def recovery_reset_password(request: Request, body: ResetPasswordRequest):
        """Set a new password. Requires the reset token as a bearer token."""
        outcome = orchestrator.recovery_reset_password(
            new_secret=body.new_secret,
            context=get_request_context(request),
            request_id=_request_id(request),
        )
        return _to_response(outcome)

    return router
