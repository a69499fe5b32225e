# backend/tenantauth/services/auth_context.py
"""
Single-principal auth context.

Wires the session bootstrapper, login throttler and security event logger
to one identity backend and one client-profile store: the state of one
signed-in client, such as an embedded app or a CLI. It follows pushed
session changes for as long as it is started.

The HTTP service never shares one of these between callers; see
``tenantauth.services.caller_auth``.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenantauth import crud
from tenantauth.core.config import settings
from tenantauth.core.local_storage import ClientProfileSessionStore, LocalStorage
from tenantauth.core.security_logger import SecurityLogger
from tenantauth.exceptions import PlatformTransportError
from tenantauth.platform.base import IdentityBackend
from tenantauth.schemas.auth import PrincipalRead, SessionRead
from tenantauth.services.login_throttle import LoginResult, LoginThrottler
from tenantauth.services.security_events import SecurityEventLogger
from tenantauth.services.session_bootstrap import AuthState, RoleFetcher, SessionBootstrapper

logger = logging.getLogger(__name__)


def db_role_fetcher(session_factory: async_sessionmaker[AsyncSession]) -> RoleFetcher:
    """Role lookup against ``profiles.role``."""

    async def fetch_role(user_id: str) -> str | None:
        async with session_factory() as db:
            return await crud.profile.get_role(db, user_id=user_id)

    return fetch_role


def session_snapshot(state: AuthState) -> SessionRead:
    """The principal/role/loading triple for ``state``."""
    principal: PrincipalRead | None = None
    if state.client_profile is not None:
        principal = PrincipalRead(
            id=state.client_profile.id,
            email=state.client_profile.email,
            client_name=state.client_profile.client_name,
            kind="client_profile",
        )
    elif state.user is not None:
        principal = PrincipalRead(id=state.user.id, email=state.user.email, kind="user")
    return SessionRead(
        principal=principal,
        role=state.role,
        is_loading=state.is_loading,
        is_authenticated=state.is_authenticated,
        is_client_profile=state.is_client_profile,
    )


class AuthContext:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        identity: IdentityBackend,
        client_sessions: ClientProfileSessionStore | None = None,
        *,
        security_events: SecurityEventLogger | None = None,
        security_log: SecurityLogger | None = None,
        bootstrapper: SessionBootstrapper | None = None,
        throttler: LoginThrottler | None = None,
    ):
        self.identity = identity
        if client_sessions is None:
            client_sessions = ClientProfileSessionStore(LocalStorage(settings.LOCAL_STORAGE_PATH))
        self.client_sessions = client_sessions
        self.security_events = security_events or SecurityEventLogger(
            session_factory,
            identity,
            default_user_agent=settings.DEFAULT_USER_AGENT,
            security_log=security_log,
        )
        self.bootstrapper = bootstrapper or SessionBootstrapper(
            identity, client_sessions, db_role_fetcher(session_factory)
        )
        self.throttler = throttler or LoginThrottler(
            session_factory,
            identity,
            self.security_events,
            client_sessions,
            on_client_login=self.bootstrapper.reload,
            security_log=security_log,
        )

    async def start(self) -> None:
        await self.bootstrapper.start()

    async def close(self) -> None:
        await self.bootstrapper.close()

    async def login(self, identifier: str, secret: str) -> LoginResult:
        return await self.throttler.attempt_login(identifier, secret)

    async def logout(self) -> None:
        """Clear the client-profile session, sign out of the platform and reset state."""
        self.client_sessions.clear()
        try:
            await self.identity.sign_out()
        except PlatformTransportError as e:
            logger.warning(f"Platform sign-out failed, clearing local state anyway: {e}")
        self.bootstrapper.reset()
        self.security_events.clear_security_caches()
        logger.info("Logged out.")

    def has_role(self, *roles: str) -> bool:
        return self.bootstrapper.state.role in roles

    def snapshot(self) -> SessionRead:
        return session_snapshot(self.bootstrapper.state)
