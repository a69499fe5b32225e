# backend/tenantauth/platform/caller.py
"""
Per-caller view of the identity backend.

The platform client held by the process is shared by every HTTP caller, so
its own "current session" belongs to nobody in particular. ``CallerIdentity``
pins one caller's access token (from their ``Authorization`` header, or
from the sign-in they just completed) and answers every session question
from that token alone.
"""

import logging

from tenantauth.platform.base import (
    AuthChangeCallback,
    IdentityBackend,
    PlatformSession,
    PlatformUser,
    Subscription,
)

logger = logging.getLogger(__name__)


class DetachedSubscription(Subscription):
    """Nothing is pushed to a single request, so there is nothing to cancel."""

    def unsubscribe(self) -> None:
        return None


class CallerIdentity(IdentityBackend):
    def __init__(self, backend: IdentityBackend, access_token: str | None = None):
        self._backend = backend
        self.access_token = access_token
        self._session: PlatformSession | None = None
        self._resolved = False

    async def _resolve(self) -> PlatformSession | None:
        if not self._resolved:
            user = None
            if self.access_token is not None:
                user = await self._backend.get_user(self.access_token)
            self._session = (
                PlatformSession(user=user, access_token=self.access_token) if user else None
            )
            self._resolved = True
        return self._session

    async def get_session(self) -> PlatformSession | None:
        return await self._resolve()

    async def get_user(self, access_token: str | None = None) -> PlatformUser | None:
        if access_token is not None and access_token != self.access_token:
            return await self._backend.get_user(access_token)
        session = await self._resolve()
        return session.user if session else None

    async def sign_in_with_password(self, email: str, password: str) -> PlatformSession:
        session = await self._backend.sign_in_with_password(email, password)
        self.access_token = session.access_token
        self._session = session
        self._resolved = True
        return session

    async def sign_out(self, access_token: str | None = None) -> None:
        token = access_token or self.access_token
        if token is None:
            logger.debug("Caller has no platform token to sign out.")
            return
        await self._backend.sign_out(token)
        if token == self.access_token:
            self.access_token = None
            self._session = None
            self._resolved = True

    def on_auth_state_change(self, callback: AuthChangeCallback) -> Subscription:
        return DetachedSubscription()
