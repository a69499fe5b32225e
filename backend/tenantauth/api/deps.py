# backend/tenantauth/api/deps.py
"""
Route guard dependencies.

Each request is resolved from its own ``Authorization: Bearer`` credential
through the ``CallerAuthService`` the lifespan stores on ``app.state``. A
request without a credential is anonymous, whoever signed in before it.
"""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tenantauth.schemas.auth import SessionRead
from tenantauth.services.auth_context import session_snapshot
from tenantauth.services.caller_auth import CallerAuthService

bearer_scheme = HTTPBearer(auto_error=False)


def get_caller_auth(request: Request) -> CallerAuthService:
    caller_auth: CallerAuthService | None = getattr(request.app.state, "caller_auth", None)
    if caller_auth is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service is not initialized.",
        )
    return caller_auth


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str | None:
    return credentials.credentials if credentials else None


async def get_current_session(
    token: Annotated[str | None, Depends(get_bearer_token)],
    caller_auth: Annotated[CallerAuthService, Depends(get_caller_auth)],
) -> SessionRead:
    if token is None:
        return SessionRead(
            is_loading=False, is_authenticated=False, is_client_profile=False
        )
    return session_snapshot(await caller_auth.resolve(token))


async def require_authenticated(
    session: Annotated[SessionRead, Depends(get_current_session)],
) -> SessionRead:
    if not session.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


def require_role(*roles: str) -> Callable[[SessionRead], Awaitable[SessionRead]]:
    """
    Dependency factory: the calling principal must hold one of ``roles``.

    Example:
        @router.get("/admin-only")
        async def admin_only(session: SessionRead = Depends(require_role("admin"))):
            ...
    """

    async def dependency(
        session: Annotated[SessionRead, Depends(require_authenticated)],
    ) -> SessionRead:
        if session.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role for this resource.",
            )
        return session

    return dependency
