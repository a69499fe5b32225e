# backend/tenantauth/core/request_context.py
"""
Request context middleware.

Attaches per-request context (request_id, IP, user_agent) that the
security event logger auto-attaches to every audit record.
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime

from fastapi import Request
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

USER_AGENT_MAX_LEN = 512


@dataclass
class RequestContext:
    """Context attached to each request for audit logging."""

    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    ip_address: str = "unknown"
    user_agent: str | None = None
    request_method: str | None = None
    request_path: str | None = None


_request_context: ContextVar[RequestContext | None] = ContextVar("request_context", default=None)


def get_request_context() -> RequestContext | None:
    """Get the current request context."""
    return _request_context.get()


def set_request_context(ctx: RequestContext | None) -> None:
    """Set the current request context."""
    _request_context.set(ctx)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that creates and attaches request context.

    Must be added early in the middleware stack.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        user_agent = request.headers.get("User-Agent", "")
        if user_agent and len(user_agent) > USER_AGENT_MAX_LEN:
            user_agent = user_agent[: USER_AGENT_MAX_LEN - 3] + "..."

        ctx = RequestContext(
            ip_address=get_remote_address(request),
            user_agent=user_agent or None,
            request_method=request.method,
            request_path=request.url.path[:255],
        )

        token = _request_context.set(ctx)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = ctx.request_id
            return response
        finally:
            _request_context.reset(token)
