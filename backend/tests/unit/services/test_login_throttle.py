# backend/tests/unit/services/test_login_throttle.py
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from tenantauth import crud
from tenantauth.exceptions import PlatformTransportError
from tenantauth.schemas.auth import ClientProfileCreate, ProfileCreate
from tenantauth.services.login_throttle import (
    CLIENT_DASHBOARD_PATH,
    LOCKED_ACCOUNT_MESSAGE,
    SERVICE_UNAVAILABLE_MESSAGE,
    UNKNOWN_EMAIL_MESSAGE,
    LoginThrottler,
    attempts_remaining_message,
    lockout_message,
)

EMAIL = "agent@acme.io"
PASSWORD = "Corr3ct!pw"
USER_ID = "5f0c6a4e-8a43-4c8e-9a51-3b8f2d0c1e77"


class MutableClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(datetime(2026, 3, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def security_log() -> MagicMock:
    return MagicMock()


@pytest.fixture
def on_client_login() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def throttler(
    session_factory, identity, security_events, client_sessions, clock, security_log, on_client_login
) -> LoginThrottler:
    return LoginThrottler(
        session_factory,
        identity,
        security_events,
        client_sessions,
        on_client_login=on_client_login,
        security_log=security_log,
        max_attempts=5,
        lockout_minutes=15,
        clock=clock,
    )


@pytest.fixture
async def known_account(session_factory, identity):
    identity.add_account(EMAIL, PASSWORD, USER_ID)
    async with session_factory() as db:
        await crud.profile.create(db, obj_in=ProfileCreate(email=EMAIL))


async def _state(session_factory, email: str = EMAIL):
    async with session_factory() as db:
        return await crud.profile.get_login_state(db, email=email)


async def _event_types(session_factory) -> list[str]:
    async with session_factory() as db:
        events = await crud.security_event.get_recent(db)
    return [e.event_type for e in reversed(events)]


@pytest.mark.asyncio
@pytest.mark.usefixtures("known_account")
async def test_successful_login_resets_counter(throttler, session_factory):
    for _ in range(3):
        await throttler.attempt_login(EMAIL, "wrong")

    result = await throttler.attempt_login(EMAIL, PASSWORD)

    assert result.success is True
    assert result.error is None
    state = await _state(session_factory)
    assert state.failed_login_attempts == 0
    assert state.locked_until is None
    assert (await _event_types(session_factory))[-1] == "successful_login"


@pytest.mark.asyncio
@pytest.mark.usefixtures("known_account")
async def test_failed_attempt_reports_remaining(throttler, session_factory):
    result = await throttler.attempt_login(EMAIL, "wrong")

    assert result.success is False
    assert result.account_locked is False
    assert result.error == attempts_remaining_message(4)
    assert result.error == "Invalid credentials. 4 attempts remaining before account lock."
    assert throttler.error == result.error
    assert (await _state(session_factory)).failed_login_attempts == 1
    assert await _event_types(session_factory) == ["failed_login_attempt"]


@pytest.mark.asyncio
@pytest.mark.usefixtures("known_account")
async def test_fifth_failure_locks_for_fifteen_minutes(throttler, session_factory, clock, security_log):
    results = [await throttler.attempt_login(EMAIL, "wrong") for _ in range(5)]

    assert [r.error for r in results[:4]] == [attempts_remaining_message(n) for n in (4, 3, 2, 1)]
    assert results[4].account_locked is True
    assert results[4].error == lockout_message(15)
    assert throttler.account_locked is True

    state = await _state(session_factory)
    assert state.failed_login_attempts == 5
    assert state.locked_until == clock.now + timedelta(minutes=15)

    event_types = await _event_types(session_factory)
    assert event_types.count("account_locked") == 1
    async with session_factory() as db:
        (locked_event,) = [
            e for e in await crud.security_event.get_recent(db) if e.event_type == "account_locked"
        ]
    assert locked_event.severity == "high"
    assert locked_event.details["failed_attempts"] == 5
    assert locked_event.details["locked_until"] == (clock.now + timedelta(minutes=15)).isoformat()
    security_log.failed_login.assert_called_with(None, EMAIL, "ACCOUNT_LOCKED")


@pytest.mark.asyncio
@pytest.mark.usefixtures("known_account")
async def test_locked_account_skips_credential_check(throttler, session_factory, identity, clock):
    for _ in range(5):
        await throttler.attempt_login(EMAIL, "wrong")
    identity.sign_in_calls.clear()
    clock.now += timedelta(minutes=5)

    result = await throttler.attempt_login(EMAIL, PASSWORD)

    assert result.success is False
    assert result.account_locked is True
    assert result.error == LOCKED_ACCOUNT_MESSAGE
    assert identity.sign_in_calls == []
    assert (await _state(session_factory)).failed_login_attempts == 5
    assert (await _event_types(session_factory))[-1] == "login_attempt_on_locked_account"


@pytest.mark.asyncio
@pytest.mark.usefixtures("known_account")
async def test_lock_expires_at_exact_boundary(throttler, session_factory, identity, clock):
    for _ in range(5):
        await throttler.attempt_login(EMAIL, "wrong")
    clock.now += timedelta(minutes=15)

    result = await throttler.attempt_login(EMAIL, PASSWORD)

    assert result.success is True
    assert identity.sign_in_calls[-1] == EMAIL
    state = await _state(session_factory)
    assert state.failed_login_attempts == 0
    assert state.locked_until is None


@pytest.mark.asyncio
async def test_unknown_email_gets_generic_message(throttler, session_factory):
    result = await throttler.attempt_login("ghost@acme.io", "whatever")

    assert result.success is False
    assert result.error == UNKNOWN_EMAIL_MESSAGE
    assert await _state(session_factory, "ghost@acme.io") is None
    assert await _event_types(session_factory) == ["failed_login_unknown_email"]


@pytest.mark.asyncio
@pytest.mark.usefixtures("known_account")
async def test_unreachable_platform_does_not_count(throttler, session_factory, identity):
    identity.sign_in_error = PlatformTransportError("Failed to fetch")

    result = await throttler.attempt_login(EMAIL, "wrong")

    assert result.success is False
    assert result.error == SERVICE_UNAVAILABLE_MESSAGE
    assert (await _state(session_factory)).failed_login_attempts == 0


@pytest.mark.asyncio
async def test_loading_flag_cleared_on_unexpected_error(throttler, identity):
    identity.sign_in_error = RuntimeError("boom")
    seen_loading = []

    original = identity.sign_in_with_password

    async def spy(email, password):
        seen_loading.append(throttler.is_loading)
        return await original(email, password)

    identity.sign_in_with_password = spy

    result = await throttler.attempt_login(EMAIL, PASSWORD)

    assert seen_loading == [True]
    assert throttler.is_loading is False
    assert result.success is False
    assert result.error is not None


class TestClientProfilePath:
    @pytest.fixture
    async def client(self, session_factory):
        async with session_factory() as db:
            return await crud.client_profile.create(
                db,
                obj_in=ClientProfileCreate(
                    client_name="Acme Retail", phone="+15550001", password="Cl1ent!pw"
                ),
            )

    @pytest.mark.asyncio
    async def test_match_wins_and_never_touches_standard_path(
        self, throttler, client, client_sessions, identity, session_factory, on_client_login, clock
    ):
        result = await throttler.attempt_login("+15550001", "Cl1ent!pw")

        assert result.success is True
        assert result.is_client_profile is True
        assert result.redirect_to == CLIENT_DASHBOARD_PATH
        assert identity.sign_in_calls == []
        on_client_login.assert_awaited_once()

        stored = client_sessions.load()
        assert stored.id == str(client.id)
        assert stored.client_name == "Acme Retail"
        assert stored.email == "+15550001"
        assert stored.phone == "+15550001"

        async with session_factory() as db:
            refreshed = await crud.client_profile.get(db, client.id)
            events = await crud.security_event.get_recent(db)
        assert refreshed.last_login.replace(tzinfo=UTC) == clock.now
        assert [e.event_type for e in events] == ["successful_client_login"]
        assert events[0].details["client_id"] == str(client.id)

    @pytest.mark.asyncio
    async def test_client_match_ignores_standard_profile_state(
        self, throttler, client, session_factory, crud_profile_spy
    ):
        result = await throttler.attempt_login("+15550001", "Cl1ent!pw")

        assert result.is_client_profile is True
        crud_profile_spy.assert_not_called()

    @pytest.mark.asyncio
    async def test_wrong_client_password_falls_through(self, throttler, client, identity):
        result = await throttler.attempt_login("+15550001", "nope")

        assert result.is_client_profile is False
        assert identity.sign_in_calls == ["+15550001"]


@pytest.fixture
def crud_profile_spy(monkeypatch) -> MagicMock:
    spy = MagicMock()

    async def get_login_state(db, *, email):
        spy(email)
        return None

    monkeypatch.setattr(crud.profile, "get_login_state", get_login_state)
    return spy
