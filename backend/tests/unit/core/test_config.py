# backend/tests/unit/core/test_config.py
import pytest
from pydantic import ValidationError

from tenantauth.core.config import Settings


def _settings(**values) -> Settings:
    return Settings(_env_file=None, **values)


def test_defaults():
    s = _settings()
    assert s.LOGIN_MAX_ATTEMPTS == 5
    assert s.LOGIN_LOCKOUT_MINUTES == 15
    assert s.DEFAULT_ROLE == "user"
    assert str(s.ASYNC_SQLALCHEMY_DATABASE_URL).startswith("postgresql+asyncpg://")


@pytest.mark.parametrize("role", ["admin", "super_admin"])
def test_privileged_default_role_rejected(role):
    with pytest.raises(ValidationError, match="DEFAULT_ROLE"):
        _settings(DEFAULT_ROLE=role)


def test_database_url_gets_async_driver():
    s = _settings(DATABASE_URL="postgresql://u:p@db:5432/app")
    assert str(s.ASYNC_SQLALCHEMY_DATABASE_URL) == "postgresql+asyncpg://u:p@db:5432/app"


@pytest.mark.parametrize(
    "raw",
    ['["https://a.example","https://b.example"]', "https://a.example, https://b.example"],
)
def test_cors_origins_json_or_comma_separated(raw):
    s = _settings(BACKEND_CORS_ORIGINS=raw)
    assert s.BACKEND_CORS_ORIGINS == ["https://a.example", "https://b.example"]


def test_debug_forces_debug_logging():
    s = _settings(DEBUG=True)
    assert s.LOG_LEVEL == "DEBUG"
    assert s.DB_ECHO is True


def test_platform_configured_needs_url_and_key():
    assert _settings(SUPABASE_URL="https://x.supabase.co").platform_configured is False
    assert (
        _settings(SUPABASE_URL="https://x.supabase.co", SUPABASE_KEY="anon").platform_configured
        is True
    )


def test_default_secret_key_rejected_in_production():
    with pytest.raises(ValidationError, match="SECRET_KEY"):
        _settings(APP_ENV="production")


def test_production_accepts_configured_secret_key():
    s = _settings(APP_ENV="production", JWT_SECRET_KEY="a-real-secret")
    assert s.SECRET_KEY == "a-real-secret"
    assert s.ALGORITHM == "HS256"
    assert s.CLIENT_PROFILE_TOKEN_EXPIRE_MINUTES == 720
