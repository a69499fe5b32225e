# backend/tenantauth/platform/supabase_identity.py
"""
Identity backend backed by the hosted Supabase auth service.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from supabase import AsyncClient, AuthApiError, AuthError, AuthRetryableError, acreate_client

from tenantauth.exceptions import InvalidCredentialsError, PlatformTransportError, is_network_error
from tenantauth.platform.base import (
    AuthChangeCallback,
    AuthChangeEvent,
    IdentityBackend,
    PlatformSession,
    PlatformUser,
    Subscription,
)

logger = logging.getLogger(__name__)


def to_platform_session(session: Any) -> PlatformSession | None:
    """Convert a supabase ``Session`` into the backend-neutral dataclass."""
    if session is None or getattr(session, "user", None) is None:
        return None
    user = session.user
    return PlatformSession(
        user=PlatformUser(id=str(user.id), email=getattr(user, "email", None)),
        access_token=session.access_token,
        expires_at=getattr(session, "expires_at", None),
    )


@asynccontextmanager
async def _translated_errors(operation: str) -> AsyncIterator[None]:
    try:
        yield
    except (AuthRetryableError, httpx.TransportError) as e:
        logger.warning(f"Identity backend unreachable during {operation}: {e}")
        raise PlatformTransportError(str(e)) from e
    except AuthError as e:
        if is_network_error(e):
            raise PlatformTransportError(str(e)) from e
        raise


class _SupabaseSubscription(Subscription):
    def __init__(self, inner: Any):
        self._inner = inner

    def unsubscribe(self) -> None:
        self._inner.unsubscribe()


class SupabaseIdentityBackend(IdentityBackend):
    def __init__(self, client: AsyncClient):
        self._client = client
        # Strong refs so dispatched callbacks are not garbage collected mid-flight.
        self._dispatched: set[asyncio.Task[None]] = set()

    @classmethod
    async def connect(cls, url: str, key: str) -> "SupabaseIdentityBackend":
        client = await acreate_client(url, key)
        logger.info(f"Connected identity backend at {url}")
        return cls(client)

    async def get_session(self) -> PlatformSession | None:
        async with _translated_errors("get_session"):
            session = await self._client.auth.get_session()
        return to_platform_session(session)

    async def get_user(self, access_token: str | None = None) -> PlatformUser | None:
        try:
            async with _translated_errors("get_user"):
                response = await self._client.auth.get_user(access_token)
        except AuthApiError as e:
            if access_token is None:
                raise
            # Expired, revoked or foreign tokens identify nobody.
            logger.info(f"Identity backend rejected a bearer token: {e}")
            return None
        if response is None or response.user is None:
            return None
        return PlatformUser(id=str(response.user.id), email=response.user.email)

    async def sign_in_with_password(self, email: str, password: str) -> PlatformSession:
        try:
            async with _translated_errors("sign_in_with_password"):
                response = await self._client.auth.sign_in_with_password(
                    {"email": email, "password": password}
                )
        except AuthApiError as e:
            raise InvalidCredentialsError(str(e)) from e

        session = to_platform_session(response.session)
        if session is None:
            raise InvalidCredentialsError("Sign-in returned no session")
        return session

    async def sign_out(self, access_token: str | None = None) -> None:
        if access_token is None:
            async with _translated_errors("sign_out"):
                await self._client.auth.sign_out()
            return
        try:
            async with _translated_errors("sign_out"):
                # GoTrue's /logout endpoint, authorized by the user's own token.
                await self._client.auth.admin.sign_out(access_token)
        except AuthApiError as e:
            logger.info(f"Bearer token was already invalid at sign-out: {e}")

    def on_auth_state_change(self, callback: AuthChangeCallback) -> Subscription:
        def _listener(event: str, session: Any) -> None:
            try:
                change = AuthChangeEvent(event)
            except ValueError:
                logger.debug(f"Ignoring unknown auth event {event!r}")
                return
            task = asyncio.get_running_loop().create_task(
                callback(change, to_platform_session(session))
            )
            self._dispatched.add(task)
            task.add_done_callback(self._dispatched.discard)

        return _SupabaseSubscription(self._client.auth.on_auth_state_change(_listener))
