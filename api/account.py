"""Account endpoints guarded by the claim gate."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.base import success_response
from auth.claims import ClaimRejected, ClaimValidationGate
from auth.security_middleware import get_request_context


def create_account_router(claim_gate: ClaimValidationGate) -> APIRouter:
    """Create account router with injected claim gate."""
    router = APIRouter(tags=["account"])

    @router.get("/profile")
    def get_profile(request: Request):
        """Who the caller is, as stated by their access token."""
        context = get_request_context(request)
        request_id = getattr(request.state, "request_id", None)

        claims = {}
        for name in ("user_id", "alias", "roles"):
            result = claim_gate.validate_claim(context, name)
            if isinstance(result, ClaimRejected):
                return JSONResponse(
                    status_code=result.status_code,
                    content=result.response.model_dump(mode="json"),
                )
            claims[name] = result.value

        return JSONResponse(
            status_code=200,
            content=success_response(
                {
                    "userId": str(claims["user_id"]),
                    "alias": claims["alias"],
                    "roles": claims["roles"],
                },
                request_id=request_id,
            ).model_dump(mode="json"),
        )

    return router
