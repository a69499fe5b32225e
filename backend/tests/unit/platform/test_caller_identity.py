# backend/tests/unit/platform/test_caller_identity.py
import pytest

from tenantauth.platform.base import PlatformSession, PlatformUser
from tenantauth.platform.caller import CallerIdentity


@pytest.fixture
def alice(identity) -> PlatformUser:
    user = identity.add_account("alice@acme.io", "Al1ce!pw", "u-alice")
    identity.tokens["alice-token"] = user
    return user


@pytest.mark.asyncio
async def test_session_comes_from_the_callers_token(identity, alice):
    identity.session = PlatformSession(
        user=PlatformUser(id="u-bob", email="bob@acme.io"), access_token="bob-token"
    )

    session = await CallerIdentity(identity, "alice-token").get_session()

    assert session.user == alice
    assert session.access_token == "alice-token"


@pytest.mark.asyncio
async def test_no_token_means_no_session_even_if_backend_has_one(identity):
    identity.session = PlatformSession(
        user=PlatformUser(id="u-bob", email="bob@acme.io"), access_token="bob-token"
    )
    caller = CallerIdentity(identity)

    assert await caller.get_session() is None
    assert await caller.get_user() is None


@pytest.mark.asyncio
async def test_unknown_token_means_no_session(identity):
    assert await CallerIdentity(identity, "forged").get_session() is None


@pytest.mark.asyncio
async def test_token_is_checked_once(identity, alice):
    calls = []
    original = identity.get_user

    async def counting_get_user(access_token=None):
        calls.append(access_token)
        return await original(access_token)

    identity.get_user = counting_get_user
    caller = CallerIdentity(identity, "alice-token")
    await caller.get_session()
    await caller.get_user()

    assert calls == ["alice-token"]


@pytest.mark.asyncio
async def test_sign_in_pins_the_new_token(identity, alice):
    caller = CallerIdentity(identity)

    await caller.sign_in_with_password("alice@acme.io", "Al1ce!pw")

    assert caller.access_token == "token-u-alice"
    assert (await caller.get_user()) == alice


@pytest.mark.asyncio
async def test_sign_out_revokes_only_the_callers_token(identity, alice):
    caller = CallerIdentity(identity, "alice-token")

    await caller.sign_out()

    assert identity.signed_out_tokens == ["alice-token"]
    assert caller.access_token is None
    assert await caller.get_session() is None


@pytest.mark.asyncio
async def test_sign_out_without_token_does_nothing(identity):
    await CallerIdentity(identity).sign_out()
    assert identity.sign_out_calls == 0


def test_pushed_changes_are_not_delivered(identity):
    async def callback(event, session):
        raise AssertionError("not expected")

    subscription = CallerIdentity(identity).on_auth_state_change(callback)
    subscription.unsubscribe()

    assert identity.subscriptions == []
