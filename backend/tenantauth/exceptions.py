from datetime import datetime

import httpx

# Substrings the hosted platform's clients put in transport failures.
NETWORK_ERROR_MARKERS = ("failed to fetch", "timeout", "timed out", "connection")


class AuthFlowError(Exception):
    """Base exception for errors raised inside the authentication flow."""

    pass


class PlatformTransportError(AuthFlowError):
    """Raised when the hosted platform cannot be reached (network, DNS, timeout)."""

    pass


class InvalidCredentialsError(AuthFlowError):
    """Raised when the identity backend rejects an email/password pair."""

    pass


class AccountLockedError(AuthFlowError):
    """Raised when a login is attempted while the account's lockout window is open."""

    def __init__(self, message: str, locked_until: datetime | None = None):
        super().__init__(message)
        self.locked_until = locked_until


class ClientProfileSessionError(AuthFlowError):
    """Raised when the locally persisted client-profile session cannot be parsed."""

    pass


def is_network_error(exc: BaseException) -> bool:
    """
    Return True for transport-class failures.

    Matches by type first (timeouts, socket errors, httpx transport errors)
    and falls back to the message substrings the platform SDK uses when it
    wraps a transport failure in its own error type.
    """
    if isinstance(
        exc, (PlatformTransportError, TimeoutError, ConnectionError, httpx.TransportError)
    ):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in NETWORK_ERROR_MARKERS)
