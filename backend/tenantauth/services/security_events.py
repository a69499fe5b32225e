# backend/tenantauth/services/security_events.py
"""
Security event logging and in-process rate limiting.

One ``SecurityEventLogger`` is built per process (see ``tenantauth.main``)
and handed to every component that emits audit events; ``bind`` derives a
per-caller logger from it. It owns two caches:

- ``rate_limit_cache``: fixed-window counters for ``check_rate_limit``,
  shared with every bound logger
- ``security_cache``: security scratch state (CSRF tokens)

Neither cache is persisted or shared across processes.
"""

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenantauth import crud
from tenantauth.core.log_utils import safe_log_dict
from tenantauth.core.request_context import get_request_context
from tenantauth.core.security import generate_csrf_token, validate_csrf_token
from tenantauth.core.security_logger import SecurityLogger
from tenantauth.platform.base import IdentityBackend
from tenantauth.schemas.security_event import SecurityEventCreate, Severity

logger = logging.getLogger(__name__)


@dataclass
class RateLimitWindow:
    count: int
    reset_time: float  # ms on the limiter's clock
    rejection_logged: bool = False


class SecurityEventLogger:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        identity: IdentityBackend | None = None,
        *,
        default_user_agent: str = "unknown",
        security_log: SecurityLogger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session_factory = session_factory
        self._identity = identity
        self._default_user_agent = default_user_agent
        self._security_log = security_log
        self._clock = clock
        self.security_cache: dict[str, Any] = {}
        self.rate_limit_cache: dict[str, RateLimitWindow] = {}

    def bind(self, identity: IdentityBackend | None) -> "SecurityEventLogger":
        """
        A logger that attributes events to ``identity``.

        The rate-limit windows are shared with this logger so every caller
        counts against the same limits. The security cache is not shared.
        """
        bound = SecurityEventLogger(
            self._session_factory,
            identity,
            default_user_agent=self._default_user_agent,
            security_log=self._security_log,
            clock=self._clock,
        )
        bound.rate_limit_cache = self.rate_limit_cache
        return bound

    async def _current_user_id(self) -> uuid.UUID | None:
        if self._identity is None:
            return None
        try:
            user = await self._identity.get_user()
            return uuid.UUID(user.id) if user else None
        except Exception as e:
            # Record the event without an actor.
            logger.debug(f"Could not resolve current principal for security event: {e}")
            return None

    async def log_security_event(
        self,
        event_type: str,
        severity: Severity = "medium",
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Append a security event to the audit store.

        Best effort: failures are logged locally and never raised.
        """
        try:
            ctx = get_request_context()
            payload = {
                **(details or {}),
                "timestamp": datetime.now(UTC).isoformat(),
                "user_agent": (ctx.user_agent if ctx and ctx.user_agent else None)
                or self._default_user_agent,
            }
            event = SecurityEventCreate(
                user_id=await self._current_user_id(),
                event_type=event_type,
                severity=severity,
                details=jsonable_encoder(payload),
            )
            async with self._session_factory() as db:
                await crud.security_event.create(db, obj_in=event)
            logger.info(f"Security event {event_type} ({severity}) recorded.")
        except Exception as e:
            logger.error(
                f"Failed to log security event {event_type}: {e} details={safe_log_dict(details or {})}"
            )

    async def check_rate_limit(
        self, identifier: str, limit: int = 100, window_ms: int = 60_000
    ) -> bool:
        """
        Fixed-window rate limit per identifier.

        Returns False once ``limit`` calls have been counted in the current
        window. The window only resets on the first call after it elapsed;
        idle keys are never swept.
        """
        now_ms = self._clock() * 1000
        key = f"rate_limit_{identifier}"
        current = self.rate_limit_cache.get(key)

        if current is None or now_ms > current.reset_time:
            self.rate_limit_cache[key] = RateLimitWindow(count=1, reset_time=now_ms + window_ms)
            return True

        if current.count >= limit:
            if not current.rejection_logged:
                current.rejection_logged = True
                if self._security_log is not None:
                    ctx = get_request_context()
                    self._security_log.rate_limited(ctx.ip_address if ctx else None, identifier)
                await self.log_security_event(
                    "rate_limit_exceeded",
                    "medium",
                    {"identifier": identifier, "limit": limit, "window_ms": window_ms},
                )
            return False

        current.count += 1
        return True

    def issue_csrf_token(self) -> str:
        return generate_csrf_token(self.security_cache)

    def validate_csrf_token(self, token: str | None) -> bool:
        return validate_csrf_token(token, self.security_cache)

    def clear_security_caches(self) -> None:
        """Drop cached security state. Rate-limit windows are kept."""
        self.security_cache.clear()
