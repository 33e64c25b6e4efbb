"""Request context middleware - builds the explicit caller context per request."""

import ipaddress

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from auth.types import RequestContext


def get_client_ip(request: Request) -> str | None:
    """Extract valid IP address from request, or None if invalid."""
    if not request.client:
        return None
    host = request.client.host
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        return None


def get_bearer_token(request: Request) -> str | None:
    """Token from an 'Authorization: Bearer <token>' header, or None."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attaches a RequestContext to request.state.auth_context.

    The context carries the caller's IP, user agent and bearer token. It is
    read by the auth routes and the claim gate; nothing is validated here and
    nothing is stored outside the request.
    """

    async def dispatch(self, request: Request, call_next):
        request.state.auth_context = RequestContext(
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
            bearer_token=get_bearer_token(request),
        )
        return await call_next(request)


def get_request_context(request: Request) -> RequestContext:
    """Context set by RequestContextMiddleware, built on the fly if it did not run."""
    context = getattr(request.state, "auth_context", None)
    if context is None:
        context = RequestContext(
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
            bearer_token=get_bearer_token(request),
        )
    return context
