# backend/tenantauth/core/client_tokens.py
"""
Bearer tokens for tenant client-profile sessions.

Client profiles live outside the identity backend, so the backend cannot
issue their tokens. Over HTTP the client-profile session travels as a
signed JWT carrying the same fields that are persisted under the
``clientProfile`` storage key. Platform users keep using the access token
the identity backend issued them.
"""

from datetime import UTC, datetime, timedelta

import jwt
from jwt.exceptions import InvalidTokenError

from tenantauth.core.config import settings
from tenantauth.exceptions import ClientProfileSessionError
from tenantauth.schemas.auth import ClientProfileSession

CLIENT_PROFILE_TOKEN_USE = "client_profile"
CLIENT_PROFILE_AUDIENCE = "tenantauth:client_profile"


def create_client_profile_token(
    session: ClientProfileSession,
    *,
    now: datetime | None = None,
    expires_minutes: int | None = None,
) -> tuple[str, int]:
    """Sign ``session`` and return ``(token, expires_at)`` with epoch-second expiry."""
    issued_at = now or datetime.now(UTC)
    minutes = (
        settings.CLIENT_PROFILE_TOKEN_EXPIRE_MINUTES if expires_minutes is None else expires_minutes
    )
    expires_at = int((issued_at + timedelta(minutes=minutes)).timestamp())
    payload = {
        "sub": session.id,
        "aud": CLIENT_PROFILE_AUDIENCE,
        "token_use": CLIENT_PROFILE_TOKEN_USE,
        "client_name": session.client_name,
        "email": session.email,
        "phone": session.phone,
        "iat": int(issued_at.timestamp()),
        "exp": expires_at,
    }
    token = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return token, expires_at


def is_client_profile_token(token: str) -> bool:
    """True when the unverified claims say this is a client-profile token."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except InvalidTokenError:
        return False
    return claims.get("token_use") == CLIENT_PROFILE_TOKEN_USE


def decode_client_profile_token(token: str) -> ClientProfileSession:
    """
    Verify a client-profile token and rebuild the session it carries.

    Raises:
        ClientProfileSessionError: bad signature, expired, or missing claims.
    """
    try:
        claims = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=CLIENT_PROFILE_AUDIENCE,
            options={"require": ["sub", "exp"]},
        )
    except InvalidTokenError as e:
        raise ClientProfileSessionError(f"Invalid client profile token: {e}") from e

    if claims.get("token_use") != CLIENT_PROFILE_TOKEN_USE:
        raise ClientProfileSessionError("Token is not a client profile token")
    try:
        return ClientProfileSession(
            id=claims["sub"],
            client_name=claims["client_name"],
            email=claims["email"],
            phone=claims.get("phone"),
        )
    except (KeyError, ValueError) as e:
        raise ClientProfileSessionError(f"Client profile token is missing claims: {e}") from e
