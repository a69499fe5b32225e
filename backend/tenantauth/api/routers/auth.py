# backend/tenantauth/api/routers/auth.py
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from tenantauth.api.deps import get_bearer_token, get_caller_auth, get_current_session
from tenantauth.core.config import settings
from tenantauth.core.rate_limit import login_rate_limit_key
from tenantauth.core.security import enforce_password_policy
from tenantauth.schemas.auth import (
    LoginRequest,
    LoginResponse,
    PasswordPolicyRequest,
    PasswordPolicyResponse,
    SessionRead,
)
from tenantauth.services.caller_auth import CallerAuthService

logger = logging.getLogger(__name__)

auth_router = APIRouter(
    tags=["Auth - Authentication & Authorization"],
)


@auth_router.post("/login", response_model=LoginResponse, summary="Sign in")
async def login(
    request: Request,
    credentials: LoginRequest,
    caller_auth: Annotated[CallerAuthService, Depends(get_caller_auth)],
) -> LoginResponse:
    allowed = await caller_auth.security_events.check_rate_limit(
        login_rate_limit_key(request),
        limit=settings.LOGIN_RATE_LIMIT,
        window_ms=settings.LOGIN_RATE_LIMIT_WINDOW_MS,
    )
    if not allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Please wait and try again.",
        )

    outcome = await caller_auth.login(credentials.identifier, credentials.password)
    result = outcome.result
    return LoginResponse(
        success=result.success,
        error=result.error,
        account_locked=result.account_locked,
        is_client_profile=result.is_client_profile,
        redirect_to=result.redirect_to,
        access_token=outcome.access_token,
        expires_at=outcome.expires_at,
    )


@auth_router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="Sign out")
async def logout(
    token: Annotated[str | None, Depends(get_bearer_token)],
    caller_auth: Annotated[CallerAuthService, Depends(get_caller_auth)],
) -> None:
    await caller_auth.logout(token)


@auth_router.get("/session", response_model=SessionRead, summary="Calling principal and role")
async def read_session(
    session: Annotated[SessionRead, Depends(get_current_session)],
) -> SessionRead:
    return session


@auth_router.post(
    "/password-policy",
    response_model=PasswordPolicyResponse,
    summary="Check a password against the policy",
)
async def check_password_policy(body: PasswordPolicyRequest) -> PasswordPolicyResponse:
    result = enforce_password_policy(body.password)
    return PasswordPolicyResponse(is_valid=result.is_valid, errors=result.errors)
