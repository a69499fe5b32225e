# backend/tests/unit/core/test_network_errors.py
import httpx
import pytest

from tenantauth.exceptions import (
    AccountLockedError,
    InvalidCredentialsError,
    PlatformTransportError,
    is_network_error,
)


@pytest.mark.parametrize(
    "exc",
    [
        PlatformTransportError("down"),
        TimeoutError(),
        ConnectionResetError(),
        httpx.ReadTimeout("slow"),
        RuntimeError("TypeError: Failed to fetch"),
        ValueError("request timed out"),
        Exception("Connection refused"),
    ],
)
def test_network_errors_detected(exc):
    assert is_network_error(exc) is True


@pytest.mark.parametrize(
    "exc",
    [
        InvalidCredentialsError("Invalid login credentials"),
        ValueError("invalid input syntax for type uuid"),
        KeyError("role"),
    ],
)
def test_other_errors_not_network(exc):
    assert is_network_error(exc) is False


def test_account_locked_carries_expiry():
    err = AccountLockedError("locked", locked_until=None)
    assert err.locked_until is None
    assert str(err) == "locked"
