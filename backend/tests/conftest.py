# backend/tests/conftest.py
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tenantauth.core.local_storage import ClientProfileSessionStore, LocalStorage
from tenantauth.db.base import Base
from tenantauth.db.session import build_session_factory, get_async_session
from tenantauth.exceptions import InvalidCredentialsError, PlatformTransportError
from tenantauth.main import app as fastapi_app
from tenantauth.platform.base import (
    AuthChangeCallback,
    AuthChangeEvent,
    IdentityBackend,
    PlatformSession,
    PlatformUser,
    Subscription,
)
from tenantauth.services.auth_context import AuthContext
from tenantauth.services.caller_auth import CallerAuthService
from tenantauth.services.security_events import SecurityEventLogger


class FakeSubscription(Subscription):
    def __init__(self, backend: "FakeIdentityBackend", callback: AuthChangeCallback):
        self.backend = backend
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        self.active = False
        self.backend.subscriptions.remove(self)


class FakeIdentityBackend(IdentityBackend):
    """In-memory identity backend with switchable failure modes."""

    def __init__(self):
        self.accounts: dict[str, tuple[str, PlatformUser]] = {}
        self.session: PlatformSession | None = None
        self.get_session_error: Exception | None = None
        self.get_session_hook = None
        self.sign_in_error: Exception | None = None
        self.sign_out_error: Exception | None = None
        self.sign_in_calls: list[str] = []
        self.sign_out_calls = 0
        self.signed_out_tokens: list[str | None] = []
        self.tokens: dict[str, PlatformUser] = {}
        self.subscriptions: list[FakeSubscription] = []

    def add_account(self, email: str, password: str, user_id: str) -> PlatformUser:
        user = PlatformUser(id=user_id, email=email)
        self.accounts[email] = (password, user)
        return user

    async def get_session(self) -> PlatformSession | None:
        if self.get_session_hook is not None:
            await self.get_session_hook()
        if self.get_session_error is not None:
            raise self.get_session_error
        return self.session

    async def get_user(self, access_token: str | None = None) -> PlatformUser | None:
        if access_token is not None:
            return self.tokens.get(access_token)
        return self.session.user if self.session else None

    async def sign_in_with_password(self, email: str, password: str) -> PlatformSession:
        self.sign_in_calls.append(email)
        if self.sign_in_error is not None:
            raise self.sign_in_error
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            raise InvalidCredentialsError("Invalid login credentials")
        self.session = PlatformSession(
            user=account[1], access_token=f"token-{account[1].id}", expires_at=1_900_000_000
        )
        self.tokens[self.session.access_token] = account[1]
        return self.session

    async def sign_out(self, access_token: str | None = None) -> None:
        self.sign_out_calls += 1
        self.signed_out_tokens.append(access_token)
        if self.sign_out_error is not None:
            raise self.sign_out_error
        if access_token is None:
            self.session = None
        else:
            self.tokens.pop(access_token, None)

    def on_auth_state_change(self, callback: AuthChangeCallback) -> Subscription:
        subscription = FakeSubscription(self, callback)
        self.subscriptions.append(subscription)
        return subscription

    async def emit(self, event: AuthChangeEvent, session: PlatformSession | None) -> None:
        for subscription in list(self.subscriptions):
            await subscription.callback(event, session)


@pytest.fixture
def identity() -> FakeIdentityBackend:
    return FakeIdentityBackend()


@pytest.fixture
def unreachable_error() -> PlatformTransportError:
    return PlatformTransportError("Failed to fetch")


@pytest.fixture
def local_storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "local_storage.json")


@pytest.fixture
def client_sessions(local_storage: LocalStorage) -> ClientProfileSessionStore:
    return ClientProfileSessionStore(local_storage)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Creates/Disposes a SQLite engine FOR EACH TEST FUNCTION."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Yields a database session per function, using the function-scoped engine."""
    async with session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


@pytest.fixture
def security_events(session_factory, identity) -> SecurityEventLogger:
    return SecurityEventLogger(session_factory, identity, default_user_agent="pytest")


@pytest.fixture
def auth_context(session_factory, identity, client_sessions, security_events) -> AuthContext:
    return AuthContext(
        session_factory, identity, client_sessions, security_events=security_events
    )


@pytest.fixture
def caller_auth(session_factory, identity, security_events) -> CallerAuthService:
    return CallerAuthService(session_factory, identity, security_events=security_events)


@pytest_asyncio.fixture(scope="function")
async def test_client(
    session_factory: async_sessionmaker[AsyncSession], caller_auth: CallerAuthService
) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx AsyncClient over ASGITransport. The lifespan does not run, so the
    caller auth service is attached to app.state here.
    """

    async def override_get_async_session_for_test() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_async_session] = override_get_async_session_for_test
    fastapi_app.state.caller_auth = caller_auth

    async with AsyncClient(
        transport=ASGITransport(app=fastapi_app), base_url="http://test"
    ) as client:
        yield client

    fastapi_app.dependency_overrides.clear()
    fastapi_app.state.caller_auth = None


@pytest_asyncio.fixture(scope="function")
async def other_client(test_client: AsyncClient) -> AsyncGenerator[AsyncClient, None]:
    """A second caller on its own socket address, sharing test_client's app setup."""
    async with AsyncClient(
        transport=ASGITransport(app=fastapi_app, client=("203.0.113.8", 4321)),
        base_url="http://test",
    ) as client:
        yield client
