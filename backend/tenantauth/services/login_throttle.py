# backend/tenantauth/services/login_throttle.py
"""
Login throttler.

Orders the two credential paths and enforces account lockout:

1. Tenant client-profile lookup (email or phone plus password hash). A match
   wins outright and never reaches the standard path.
2. Standard platform sign-in, guarded by the ``failed_login_attempts`` /
   ``locked_until`` columns on ``profiles``.

Every outcome emits a security audit event.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenantauth import crud
from tenantauth.core.config import settings
from tenantauth.core.local_storage import ClientProfileSessionStore
from tenantauth.core.log_utils import mask_email
from tenantauth.core.request_context import get_request_context
from tenantauth.core.security_logger import SecurityLogger
from tenantauth.crud.crud_profile import LoginAttemptState
from tenantauth.db.models.client_profile import ClientProfile
from tenantauth.exceptions import (
    AccountLockedError,
    InvalidCredentialsError,
    PlatformTransportError,
)
from tenantauth.platform.base import IdentityBackend
from tenantauth.schemas.auth import ClientProfileSession
from tenantauth.services.security_events import SecurityEventLogger

logger = logging.getLogger(__name__)

CLIENT_DASHBOARD_PATH = "/dashboard"

LOCKED_ACCOUNT_MESSAGE = (
    "Account is temporarily locked due to multiple failed login attempts. "
    "Please try again later."
)
UNKNOWN_EMAIL_MESSAGE = "Invalid email or password"
SERVICE_UNAVAILABLE_MESSAGE = (
    "Unable to reach the authentication service. Please check your connection and try again."
)
GENERIC_FAILURE_MESSAGE = "An error occurred during login. Please try again."


def lockout_message(lockout_minutes: int) -> str:
    return (
        "Account locked due to multiple failed login attempts. "
        f"Please try again in {lockout_minutes} minutes."
    )


def attempts_remaining_message(remaining: int) -> str:
    return f"Invalid credentials. {remaining} attempts remaining before account lock."


@dataclass
class LoginResult:
    success: bool
    error: str | None = None
    account_locked: bool = False
    is_client_profile: bool = False
    redirect_to: str | None = None


class LoginThrottler:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        identity: IdentityBackend,
        security_events: SecurityEventLogger,
        client_sessions: ClientProfileSessionStore,
        *,
        on_client_login: Callable[[], Awaitable[None]] | None = None,
        security_log: SecurityLogger | None = None,
        max_attempts: int = settings.LOGIN_MAX_ATTEMPTS,
        lockout_minutes: int = settings.LOGIN_LOCKOUT_MINUTES,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self._session_factory = session_factory
        self._identity = identity
        self._events = security_events
        self._client_sessions = client_sessions
        self._on_client_login = on_client_login
        self._security_log = security_log
        self.max_attempts = max_attempts
        self.lockout_minutes = lockout_minutes
        self._clock = clock

        self.is_loading = False
        self.error: str | None = None
        self.account_locked = False

    def _client_ip(self) -> str | None:
        ctx = get_request_context()
        return ctx.ip_address if ctx else None

    def _fail(self, message: str, *, locked: bool = False) -> LoginResult:
        self.error = message
        self.account_locked = locked
        return LoginResult(success=False, error=message, account_locked=locked)

    async def attempt_login(self, identifier: str, secret: str) -> LoginResult:
        """Run one login attempt. ``is_loading`` is cleared on every branch."""
        self.is_loading = True
        self.error = None
        self.account_locked = False
        identifier = identifier.strip()
        try:
            client = await self._find_client_profile(identifier, secret)
            if client is not None:
                return await self._complete_client_login(client, identifier)
            return await self._standard_login(identifier, secret)
        except Exception as e:
            logger.error(f"Login error for {mask_email(identifier)}: {e}", exc_info=True)
            return self._fail(GENERIC_FAILURE_MESSAGE)
        finally:
            self.is_loading = False

    # --- Client-profile path ---

    async def _find_client_profile(self, identifier: str, secret: str) -> ClientProfile | None:
        try:
            async with self._session_factory() as db:
                matches = await crud.client_profile.authenticate(
                    db, identifier=identifier, password=secret
                )
        except Exception as e:
            logger.error(f"Client profile lookup failed, trying standard login: {e}")
            return None
        if len(matches) > 1:
            logger.warning(
                f"{len(matches)} client profiles matched {mask_email(identifier)}; using the first."
            )
        return matches[0] if matches else None

    async def _complete_client_login(self, client: ClientProfile, identifier: str) -> LoginResult:
        logger.info(f"Client profile login successful: {client.id}")
        async with self._session_factory() as db:
            await crud.client_profile.touch_last_login(db, client_id=client.id, when=self._clock())

        await self._events.log_security_event(
            "successful_client_login",
            "low",
            {"client_id": str(client.id), "client_name": client.client_name},
        )
        if self._security_log is not None:
            self._security_log.successful_login(self._client_ip(), identifier, method="client_profile")

        self._client_sessions.save(
            ClientProfileSession(
                id=str(client.id),
                client_name=client.client_name,
                email=client.email or identifier,
                phone=client.phone,
            )
        )
        if self._on_client_login is not None:
            await self._on_client_login()
        return LoginResult(
            success=True, is_client_profile=True, redirect_to=CLIENT_DASHBOARD_PATH
        )

    # --- Standard path ---

    async def _load_login_state(self, email: str) -> LoginAttemptState | None:
        async with self._session_factory() as db:
            return await crud.profile.get_login_state(db, email=email)

    def _ensure_not_locked(self, state: LoginAttemptState | None) -> None:
        # Strict comparison: a lock that ends exactly now has expired.
        if state is None or state.locked_until is None:
            return
        if state.locked_until > self._clock():
            raise AccountLockedError(LOCKED_ACCOUNT_MESSAGE, locked_until=state.locked_until)

    async def _standard_login(self, email: str, password: str) -> LoginResult:
        state = await self._load_login_state(email)
        try:
            self._ensure_not_locked(state)
        except AccountLockedError as e:
            logger.warning(f"Login attempt on locked account {mask_email(email)}")
            await self._events.log_security_event(
                "login_attempt_on_locked_account",
                "high",
                {"email": email, "locked_until": e.locked_until.isoformat()},
            )
            if self._security_log is not None:
                self._security_log.failed_login(self._client_ip(), email, "LOCKED_ACCOUNT_ATTEMPT")
            return self._fail(str(e), locked=True)

        try:
            await self._identity.sign_in_with_password(email, password)
        except PlatformTransportError as e:
            # Not the user's fault: the counter is left alone.
            logger.warning(f"Identity backend unreachable during login: {e}")
            return self._fail(SERVICE_UNAVAILABLE_MESSAGE)
        except InvalidCredentialsError as e:
            return await self._record_failure(email, state, str(e))

        async with self._session_factory() as db:
            await crud.profile.reset_failed_attempts(db, email=email)
        await self._events.log_security_event("successful_login", "low", {"email": email})
        if self._security_log is not None:
            self._security_log.successful_login(self._client_ip(), email)
        logger.info(f"Successful login for {mask_email(email)}")
        return LoginResult(success=True)

    async def _record_failure(
        self, email: str, state: LoginAttemptState | None, error_message: str
    ) -> LoginResult:
        ip = self._client_ip()
        updated: LoginAttemptState | None = None
        if state is not None:
            async with self._session_factory() as db:
                updated = await crud.profile.record_failed_attempt(
                    db,
                    email=email,
                    now=self._clock(),
                    max_attempts=self.max_attempts,
                    lockout=timedelta(minutes=self.lockout_minutes),
                )

        if updated is None:
            await self._events.log_security_event(
                "failed_login_unknown_email",
                "medium",
                {"email": email, "error_message": error_message},
            )
            if self._security_log is not None:
                self._security_log.failed_login(ip, email, "UNKNOWN_EMAIL")
            return self._fail(UNKNOWN_EMAIL_MESSAGE)

        if updated.failed_login_attempts >= self.max_attempts:
            logger.warning(
                f"Account {mask_email(email)} locked after {updated.failed_login_attempts} failed attempts"
            )
            await self._events.log_security_event(
                "account_locked",
                "high",
                {
                    "email": email,
                    "failed_attempts": updated.failed_login_attempts,
                    "locked_until": updated.locked_until.isoformat()
                    if updated.locked_until
                    else None,
                },
            )
            if self._security_log is not None:
                self._security_log.failed_login(ip, email, "ACCOUNT_LOCKED")
            return self._fail(lockout_message(self.lockout_minutes), locked=True)

        remaining = self.max_attempts - updated.failed_login_attempts
        await self._events.log_security_event(
            "failed_login_attempt",
            "medium",
            {
                "email": email,
                "failed_attempts": updated.failed_login_attempts,
                "error_message": error_message,
            },
        )
        if self._security_log is not None:
            self._security_log.failed_login(ip, email, "BAD_CREDENTIALS")
        return self._fail(attempts_remaining_message(remaining))
