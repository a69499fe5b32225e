# backend/tenantauth/platform/base.py
"""
Identity backend contract.

The hosted platform owns user accounts, password verification and session
tokens. Everything in ``tenantauth`` talks to it through this interface so
the session bootstrapper and login throttler never import the platform SDK
directly.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum


class AuthChangeEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"
    MFA_CHALLENGE_VERIFIED = "MFA_CHALLENGE_VERIFIED"


@dataclass(frozen=True)
class PlatformUser:
    id: str
    email: str | None = None


@dataclass(frozen=True)
class PlatformSession:
    user: PlatformUser
    access_token: str
    expires_at: int | None = None  # epoch seconds


AuthChangeCallback = Callable[[AuthChangeEvent, PlatformSession | None], Awaitable[None]]


class Subscription(ABC):
    """Handle returned by ``on_auth_state_change``."""

    @abstractmethod
    def unsubscribe(self) -> None: ...


class IdentityBackend(ABC):
    """
    Session and credential primitives of the hosted identity platform.

    Implementations raise ``PlatformTransportError`` when the platform cannot
    be reached and ``InvalidCredentialsError`` when it rejects a sign-in.
    """

    @abstractmethod
    async def get_session(self) -> PlatformSession | None:
        """Current session, or None when signed out."""

    @abstractmethod
    async def get_user(self, access_token: str | None = None) -> PlatformUser | None:
        """
        User attached to ``access_token``, or to the current session when no
        token is given. None when the token or session is not valid.
        """

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> PlatformSession:
        """Verify credentials and establish a session."""

    @abstractmethod
    async def sign_out(self, access_token: str | None = None) -> None:
        """End the session behind ``access_token``, or the current session."""

    @abstractmethod
    def on_auth_state_change(self, callback: AuthChangeCallback) -> Subscription:
        """
        Register ``callback`` for pushed session changes.

        Notifications are delivered in arrival order for as long as the
        returned subscription is active.
        """
