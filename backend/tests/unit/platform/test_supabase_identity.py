# backend/tests/unit/platform/test_supabase_identity.py
import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from supabase import AuthApiError, AuthRetryableError, AuthSessionMissingError

from tenantauth.exceptions import InvalidCredentialsError, PlatformTransportError
from tenantauth.platform.base import AuthChangeEvent, PlatformSession
from tenantauth.platform.supabase_identity import SupabaseIdentityBackend, to_platform_session


def _sdk_session(user_id: str = "u1", email: str = "a@acme.io"):
    return SimpleNamespace(
        user=SimpleNamespace(id=user_id, email=email), access_token="jwt", expires_at=1700000000
    )


@pytest.fixture
def client() -> MagicMock:
    client = MagicMock()
    client.auth.get_session = AsyncMock(return_value=None)
    client.auth.get_user = AsyncMock(return_value=None)
    client.auth.sign_in_with_password = AsyncMock()
    client.auth.sign_out = AsyncMock()
    client.auth.admin.sign_out = AsyncMock()
    return client


@pytest.fixture
def backend(client) -> SupabaseIdentityBackend:
    return SupabaseIdentityBackend(client)


def test_to_platform_session():
    session = to_platform_session(_sdk_session())
    assert session == PlatformSession(
        user=session.user, access_token="jwt", expires_at=1700000000
    )
    assert session.user.id == "u1"
    assert to_platform_session(None) is None
    assert to_platform_session(SimpleNamespace(user=None)) is None


@pytest.mark.asyncio
async def test_get_session_converts(backend, client):
    client.auth.get_session.return_value = _sdk_session()
    session = await backend.get_session()
    assert session.user.email == "a@acme.io"


@pytest.mark.asyncio
async def test_retryable_error_is_transport_error(backend, client):
    client.auth.get_session.side_effect = AuthRetryableError("Failed to fetch", 0)
    with pytest.raises(PlatformTransportError):
        await backend.get_session()


@pytest.mark.asyncio
async def test_httpx_transport_error_is_transport_error(backend, client):
    client.auth.get_session.side_effect = httpx.ConnectError("connection refused")
    with pytest.raises(PlatformTransportError):
        await backend.get_session()


@pytest.mark.asyncio
async def test_other_auth_errors_propagate(backend, client):
    client.auth.get_user.side_effect = AuthSessionMissingError()
    with pytest.raises(AuthSessionMissingError):
        await backend.get_user()


@pytest.mark.asyncio
async def test_rejected_credentials(backend, client):
    client.auth.sign_in_with_password.side_effect = AuthApiError(
        "Invalid login credentials", 400, "invalid_credentials"
    )
    with pytest.raises(InvalidCredentialsError, match="Invalid login credentials"):
        await backend.sign_in_with_password("a@acme.io", "wrong")


@pytest.mark.asyncio
async def test_sign_in_without_session_is_rejected(backend, client):
    client.auth.sign_in_with_password.return_value = SimpleNamespace(session=None)
    with pytest.raises(InvalidCredentialsError):
        await backend.sign_in_with_password("a@acme.io", "pw")


@pytest.mark.asyncio
async def test_sign_in_success(backend, client):
    client.auth.sign_in_with_password.return_value = SimpleNamespace(session=_sdk_session())
    session = await backend.sign_in_with_password("a@acme.io", "pw")

    assert session.user.id == "u1"
    client.auth.sign_in_with_password.assert_awaited_once_with(
        {"email": "a@acme.io", "password": "pw"}
    )


@pytest.mark.asyncio
async def test_get_user_for_bearer_token(backend, client):
    client.auth.get_user.return_value = SimpleNamespace(user=SimpleNamespace(id="u9", email="b@acme.io"))

    user = await backend.get_user("caller-jwt")

    assert user.id == "u9"
    client.auth.get_user.assert_awaited_once_with("caller-jwt")


@pytest.mark.asyncio
async def test_rejected_bearer_token_identifies_nobody(backend, client):
    client.auth.get_user.side_effect = AuthApiError("invalid JWT", 401, "bad_jwt")
    assert await backend.get_user("expired-jwt") is None


@pytest.mark.asyncio
async def test_rejected_session_error_propagates_without_token(backend, client):
    client.auth.get_user.side_effect = AuthApiError("invalid JWT", 401, "bad_jwt")
    with pytest.raises(AuthApiError):
        await backend.get_user()


@pytest.mark.asyncio
async def test_sign_out_bearer_token_uses_logout_endpoint(backend, client):
    await backend.sign_out("caller-jwt")

    client.auth.admin.sign_out.assert_awaited_once_with("caller-jwt")
    client.auth.sign_out.assert_not_awaited()


@pytest.mark.asyncio
async def test_sign_out_with_invalid_token_is_quiet(backend, client):
    client.auth.admin.sign_out.side_effect = AuthApiError("invalid JWT", 401, "bad_jwt")
    await backend.sign_out("expired-jwt")


@pytest.mark.asyncio
async def test_sign_out_unreachable_is_transport_error(backend, client):
    client.auth.admin.sign_out.side_effect = httpx.ConnectError("connection refused")
    with pytest.raises(PlatformTransportError):
        await backend.sign_out("caller-jwt")


@pytest.mark.asyncio
async def test_sign_out_without_token_ends_client_session(backend, client):
    await backend.sign_out()
    client.auth.sign_out.assert_awaited_once_with()


@pytest.mark.asyncio
async def test_auth_state_listener_dispatches_to_coroutine(backend, client):
    received = []

    async def callback(event, session):
        received.append((event, session))

    inner_subscription = MagicMock()
    client.auth.on_auth_state_change.return_value = inner_subscription

    subscription = backend.on_auth_state_change(callback)
    (listener,) = client.auth.on_auth_state_change.call_args[0]

    listener("SIGNED_IN", _sdk_session())
    listener("SOMETHING_NEW", None)
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert len(received) == 1
    assert received[0][0] is AuthChangeEvent.SIGNED_IN
    assert received[0][1].user.id == "u1"

    subscription.unsubscribe()
    inner_subscription.unsubscribe.assert_called_once()
