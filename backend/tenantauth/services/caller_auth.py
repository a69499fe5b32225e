# backend/tenantauth/services/caller_auth.py
"""
Per-caller authentication for the HTTP service.

Every request is its own client. The principal and role come from the
bearer token the caller presents, never from state another caller left in
the process:

- a client-profile token (signed here at client-profile login) is verified
  and seeds a throwaway in-memory ``clientProfile`` store
- any other token is checked against the identity backend

Either way a fresh ``SessionBootstrapper`` runs against that caller's view,
so the bootstrap order, timeouts and role fallbacks are the same ones a
single-principal ``AuthContext`` uses. Only the rate-limit windows of the
security event logger are shared between callers.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenantauth.core.client_tokens import (
    create_client_profile_token,
    decode_client_profile_token,
    is_client_profile_token,
)
from tenantauth.core.config import settings
from tenantauth.core.local_storage import ClientProfileSessionStore, MemoryStorage
from tenantauth.core.security_logger import SecurityLogger
from tenantauth.exceptions import ClientProfileSessionError, PlatformTransportError
from tenantauth.platform.base import IdentityBackend
from tenantauth.platform.caller import CallerIdentity
from tenantauth.services.auth_context import db_role_fetcher
from tenantauth.services.login_throttle import LoginResult, LoginThrottler
from tenantauth.services.security_events import SecurityEventLogger
from tenantauth.services.session_bootstrap import AuthState, SessionBootstrapper

logger = logging.getLogger(__name__)


@dataclass
class CallerLogin:
    result: LoginResult
    access_token: str | None = None
    expires_at: int | None = None  # epoch seconds


class CallerAuthService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        identity: IdentityBackend,
        *,
        security_events: SecurityEventLogger | None = None,
        security_log: SecurityLogger | None = None,
    ):
        self._session_factory = session_factory
        self._identity = identity
        self._security_log = security_log
        self._fetch_role = db_role_fetcher(session_factory)
        self.security_events = security_events or SecurityEventLogger(
            session_factory,
            default_user_agent=settings.DEFAULT_USER_AGENT,
            security_log=security_log,
        )

    def _caller_view(
        self, access_token: str | None
    ) -> tuple[IdentityBackend, ClientProfileSessionStore] | None:
        store = ClientProfileSessionStore(MemoryStorage())
        if access_token is not None and is_client_profile_token(access_token):
            try:
                store.save(decode_client_profile_token(access_token))
            except ClientProfileSessionError as e:
                logger.info(f"Rejected client profile token: {e}")
                return None
            return CallerIdentity(self._identity), store
        return CallerIdentity(self._identity, access_token), store

    async def resolve(self, access_token: str | None) -> AuthState:
        """Bootstrap the session of the caller holding ``access_token``."""
        view = self._caller_view(access_token)
        if view is None:
            return AuthState(is_loading=False)
        identity, store = view
        bootstrapper = SessionBootstrapper(identity, store, self._fetch_role)
        try:
            await bootstrapper.start()
        finally:
            await bootstrapper.close()
        return bootstrapper.state

    async def login(self, identifier: str, secret: str) -> CallerLogin:
        """
        Run one login attempt for a new caller.

        A successful attempt also returns the bearer token the caller
        presents from then on.
        """
        caller = CallerIdentity(self._identity)
        store = ClientProfileSessionStore(MemoryStorage())
        throttler = LoginThrottler(
            self._session_factory,
            caller,
            self.security_events.bind(caller),
            store,
            security_log=self._security_log,
        )
        result = await throttler.attempt_login(identifier, secret)
        if not result.success:
            return CallerLogin(result=result)

        if result.is_client_profile:
            profile = store.load()
            if profile is None:
                logger.error("Client profile login succeeded without a stored session.")
                return CallerLogin(result=result)
            token, expires_at = create_client_profile_token(profile)
            return CallerLogin(result=result, access_token=token, expires_at=expires_at)

        session = await caller.get_session()
        return CallerLogin(
            result=result,
            access_token=caller.access_token,
            expires_at=session.expires_at if session else None,
        )

    async def logout(self, access_token: str | None) -> None:
        """
        End the caller's session.

        Client-profile tokens are stateless and simply expire. Platform
        tokens are revoked at the identity backend.
        """
        if access_token is None:
            logger.debug("Logout without a bearer token; nothing to end.")
            return
        if is_client_profile_token(access_token):
            logger.info("Client profile logout; the token expires on its own.")
            return
        try:
            await CallerIdentity(self._identity, access_token).sign_out()
        except PlatformTransportError as e:
            logger.warning(f"Platform sign-out failed: {e}")
        logger.info("Logged out.")
