# backend/tenantauth/services/session_bootstrap.py
"""
Session bootstrapper.

Establishes the current principal and role when the process starts and on
every session change pushed by the identity backend, without ever leaving
the caller stuck in a loading state:

1. A locally persisted client-profile session wins outright (role "user").
2. Otherwise the platform session is fetched under a timeout; transport
   failures mean "unauthenticated", not an error.
3. The role comes from ``profiles.role`` under a shorter timeout with a
   single retry for non-network errors. Every failure path falls back to
   the default role.

Each session change bumps a generation counter. A role resolution that
finishes after a newer session change is discarded.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from tenantauth.core.config import settings
from tenantauth.core.local_storage import ClientProfileSessionStore
from tenantauth.exceptions import is_network_error
from tenantauth.platform.base import (
    AuthChangeEvent,
    IdentityBackend,
    PlatformSession,
    PlatformUser,
    Subscription,
)
from tenantauth.schemas.auth import ClientProfileSession

logger = logging.getLogger(__name__)

RoleFetcher = Callable[[str], Awaitable[str | None]]


@dataclass
class AuthState:
    """Process-local view of who is signed in."""

    user: PlatformUser | None = None
    session: PlatformSession | None = None
    client_profile: ClientProfileSession | None = None
    role: str | None = None
    is_loading: bool = True

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None or self.client_profile is not None

    @property
    def is_client_profile(self) -> bool:
        return self.client_profile is not None


class SessionBootstrapper:
    def __init__(
        self,
        identity: IdentityBackend,
        client_sessions: ClientProfileSessionStore,
        fetch_role: RoleFetcher,
        *,
        session_timeout: float = settings.SESSION_FETCH_TIMEOUT_SECONDS,
        role_timeout: float = settings.ROLE_FETCH_TIMEOUT_SECONDS,
        role_retry_delay: float = settings.ROLE_RETRY_DELAY_SECONDS,
        auth_change_delay: float = settings.AUTH_CHANGE_ROLE_DELAY_SECONDS,
        default_role: str = settings.DEFAULT_ROLE,
    ):
        self._identity = identity
        self._client_sessions = client_sessions
        self._fetch_role = fetch_role
        self._session_timeout = session_timeout
        self._role_timeout = role_timeout
        self._role_retry_delay = role_retry_delay
        self._auth_change_delay = auth_change_delay
        self.default_role = default_role

        self.state = AuthState()
        self._generation = 0
        self._subscription: Subscription | None = None
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def generation(self) -> int:
        return self._generation

    # --- Lifecycle ---

    async def start(self) -> None:
        """Subscribe to session changes, then resolve the initial session."""
        if self._subscription is None:
            logger.info("Setting up auth state listener...")
            self._subscription = self._identity.on_auth_state_change(self.handle_auth_change)
        await self._bootstrap()

    async def reload(self) -> None:
        """Discard all in-memory state and bootstrap again."""
        logger.info("Reloading session state.")
        self._generation += 1
        await self._cancel_pending()
        self.state = AuthState()
        await self._bootstrap()

    async def close(self) -> None:
        """Unsubscribe from session changes and cancel pending role lookups."""
        if self._subscription is not None:
            logger.info("Cleaning up auth subscription")
            self._subscription.unsubscribe()
            self._subscription = None
        await self._cancel_pending()

    def reset(self) -> None:
        """Clear every principal (used by logout)."""
        self._generation += 1
        self.state.user = None
        self.state.session = None
        self.state.client_profile = None
        self.state.role = None
        self.state.is_loading = False

    # --- Bootstrap ---

    def _adopt_client_profile(self) -> bool:
        profile = self._client_sessions.load()
        if profile is None:
            return False
        logger.info(f"Found client profile session for client {profile.id}")
        self._generation += 1
        self.state.client_profile = profile
        self.state.role = "user"  # client profiles never carry another role
        return True

    def _adopt_session(self, session: PlatformSession) -> int:
        previous = self.state.user
        self._generation += 1
        if previous is None or previous.id != session.user.id:
            self.state.role = None
        self.state.session = session
        self.state.user = session.user
        return self._generation

    def _clear_platform_session(self) -> None:
        self._generation += 1
        self.state.session = None
        self.state.user = None
        self.state.role = None

    async def _bootstrap(self) -> None:
        try:
            if self._adopt_client_profile():
                return

            try:
                async with asyncio.timeout(self._session_timeout):
                    session = await self._identity.get_session()
            except Exception as e:
                if is_network_error(e):
                    logger.warning(f"Network issue detected, continuing without session: {e!r}")
                else:
                    logger.error(f"Error getting session: {e}", exc_info=True)
                self._clear_platform_session()
                return

            if session is None:
                logger.info("No existing session found.")
                return

            generation = self._adopt_session(session)
            role = await self.resolve_role(session.user.id)
            self._apply_role(generation, role)
        finally:
            self.state.is_loading = False

    # --- Role resolution ---

    async def _fetch_role_with_timeout(self, user_id: str) -> str | None:
        async with asyncio.timeout(self._role_timeout):
            return await self._fetch_role(user_id)

    async def resolve_role(self, user_id: str) -> str:
        """
        Resolve the role for ``user_id``.

        Network-class failures (including the timeout) return the default
        role immediately. Any other failure is retried once after
        ``role_retry_delay``. A missing row or empty role is the default.
        """
        try:
            role = await self._fetch_role_with_timeout(user_id)
        except Exception as e:
            if is_network_error(e):
                logger.warning(f"Network issue fetching role, defaulting to {self.default_role}")
                return self.default_role

            logger.error(f"Profile fetch error: {e}")
            await asyncio.sleep(self._role_retry_delay)
            try:
                role = await self._fetch_role_with_timeout(user_id)
            except Exception as retry_error:
                logger.error(f"Retry also failed: {retry_error}")
                logger.warning(f"No profile found after retry, defaulting to {self.default_role}")
                return self.default_role

        if not role:
            logger.info(f"No role found in profile, defaulting to {self.default_role}")
            return self.default_role
        return role

    def _apply_role(self, generation: int, role: str) -> None:
        if generation != self._generation:
            logger.debug(
                f"Discarding role resolved for stale session generation {generation} "
                f"(current {self._generation})"
            )
            return
        self.state.role = role
        logger.info(f"User role set to: {role}")

    # --- Push notifications ---

    async def handle_auth_change(
        self, event: AuthChangeEvent, session: PlatformSession | None
    ) -> None:
        logger.info(f"Auth state changed: {event.value}")

        if event is AuthChangeEvent.SIGNED_OUT or session is None:
            # The client-profile session is managed separately and survives this.
            self._clear_platform_session()
            self.state.is_loading = False
            return

        # Platform auth takes precedence over a client-profile session.
        if self.state.client_profile is not None:
            logger.info("Platform session established; clearing client profile session.")
        self.state.client_profile = None
        self._client_sessions.clear()

        generation = self._adopt_session(session)
        self.state.is_loading = False
        self._spawn(self._resolve_after_delay(generation, session.user.id))

    async def _resolve_after_delay(self, generation: int, user_id: str) -> None:
        await asyncio.sleep(self._auth_change_delay)
        if generation != self._generation:
            return
        role = await self.resolve_role(user_id)
        self._apply_role(generation, role)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_for_pending(self) -> None:
        """Wait until every scheduled role resolution has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _cancel_pending(self) -> None:
        tasks = list(self._pending)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
