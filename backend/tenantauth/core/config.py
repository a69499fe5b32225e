# /backend/tenantauth/core/config.py

import json
import logging
from typing import Literal

from pydantic import (
    AliasChoices,
    Field,
    PostgresDsn,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

PRIVILEGED_ROLES = ("admin", "super_admin")
DEV_SECRET_KEY = "dev-only-client-profile-token-secret-change-me"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False
    )

    # --- Environment & Debug ---
    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development", validation_alias="APP_ENV"
    )
    DEBUG: bool = Field(default=False, validation_alias=AliasChoices("DEBUG_MODE", "DEBUG"))
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
    )

    # --- Core Application Settings ---
    APP_NAME: str = Field(default="Tenant Auth", validation_alias="APP_NAME")
    APP_VERSION: str = Field(default="0.1.0", validation_alias="APP_VERSION")
    APP_DESCRIPTION: str = Field(
        default="Session bootstrap and login throttling for the messaging/CRM portal.",
        validation_alias="APP_DESCRIPTION",
    )
    API_V1_STR: str = Field(default="/api/v1", validation_alias="API_V1_STR")

    # --- Hosted Platform (identity backend) ---
    SUPABASE_URL: str | None = Field(default=None, validation_alias="SUPABASE_URL")
    SUPABASE_ANON_KEY: str | None = Field(
        default=None, validation_alias=AliasChoices("SUPABASE_ANON_KEY", "SUPABASE_KEY")
    )

    # --- Client-Profile Token Settings ---
    SECRET_KEY: str = Field(
        default=DEV_SECRET_KEY,
        description="Signs the bearer tokens issued to client-profile logins",
        validation_alias=AliasChoices("JWT_SECRET_KEY", "SECRET_KEY"),
    )
    ALGORITHM: str = Field(default="HS256", validation_alias="ALGORITHM")
    CLIENT_PROFILE_TOKEN_EXPIRE_MINUTES: int = Field(
        default=60 * 12, validation_alias="CLIENT_PROFILE_TOKEN_EXPIRE_MINUTES"
    )

    # --- Database Settings ---
    PRIMARY_DATABASE_URL_ENV: PostgresDsn | None = Field(
        default=None, validation_alias="DATABASE_URL"
    )
    POSTGRES_SERVER: str = Field(default="db", validation_alias="POSTGRES_SERVER")
    POSTGRES_USER: str = Field(default="postgres", validation_alias="POSTGRES_USER")
    POSTGRES_PASSWORD: str = Field(default="postgres", validation_alias="POSTGRES_PASSWORD")
    POSTGRES_DB: str = Field(default="postgres", validation_alias="POSTGRES_DB")
    POSTGRES_PORT: int = Field(default=5432, validation_alias="POSTGRES_PORT")
    DB_ECHO: bool = Field(default=False, validation_alias="DB_ECHO")

    # --- Local Client Storage ---
    LOCAL_STORAGE_PATH: str = Field(
        default=".tenantauth/local_storage.json",
        description="JSON file standing in for the browser's localStorage.",
        validation_alias="LOCAL_STORAGE_PATH",
    )
    SECURITY_LOG_PATH: str = Field(
        default="logs/security.log", validation_alias="SECURITY_LOG_PATH"
    )
    DEFAULT_USER_AGENT: str = Field(
        default="tenantauth/0.1", validation_alias="DEFAULT_USER_AGENT"
    )

    # --- Account Lockout Settings ---
    LOGIN_MAX_ATTEMPTS: int = Field(
        default=5,
        description="Max failed login attempts before lockout",
        validation_alias="LOGIN_MAX_ATTEMPTS",
    )
    LOGIN_LOCKOUT_MINUTES: int = Field(
        default=15,
        description="Lockout duration in minutes after max failed attempts",
        validation_alias="LOGIN_LOCKOUT_MINUTES",
    )
    LOGIN_RATE_LIMIT: int = Field(
        default=20,
        description="Login requests allowed per client IP within one window",
        validation_alias="LOGIN_RATE_LIMIT",
    )
    LOGIN_RATE_LIMIT_WINDOW_MS: int = Field(
        default=60_000, validation_alias="LOGIN_RATE_LIMIT_WINDOW_MS"
    )

    # --- Session Bootstrap Settings ---
    DEFAULT_ROLE: str = Field(default="user", validation_alias="DEFAULT_ROLE")
    SESSION_FETCH_TIMEOUT_SECONDS: float = Field(
        default=10.0, validation_alias="SESSION_FETCH_TIMEOUT_SECONDS"
    )
    ROLE_FETCH_TIMEOUT_SECONDS: float = Field(
        default=5.0, validation_alias="ROLE_FETCH_TIMEOUT_SECONDS"
    )
    ROLE_RETRY_DELAY_SECONDS: float = Field(
        default=1.0, validation_alias="ROLE_RETRY_DELAY_SECONDS"
    )
    AUTH_CHANGE_ROLE_DELAY_SECONDS: float = Field(
        default=0.1,
        description="Delay before re-resolving the role after a pushed session change",
        validation_alias="AUTH_CHANGE_ROLE_DELAY_SECONDS",
    )

    # --- Fields for complex parsing ---
    backend_cors_origins_env_str: str | None = Field(
        default='["http://localhost:5173","http://localhost:8080"]',
        validation_alias=AliasChoices("BACKEND_CORS_ORIGINS", "BACKEND_CORS_ORIGINS_ENV"),
    )

    _parsed_backend_cors_origins: list[str] = []

    def _parse_string_list_input_helper(
        self, input_str: str | None, field_name_for_log: str
    ) -> list[str]:
        parsed_list: list[str] = []
        if not input_str or not input_str.strip():
            return parsed_list
        try:
            loaded_items = json.loads(input_str)
            if isinstance(loaded_items, list):
                parsed_list = [str(item).strip() for item in loaded_items if str(item).strip()]
            else:
                parsed_list = [item.strip() for item in input_str.split(",") if item.strip()]
        except json.JSONDecodeError:
            logger.debug(
                f"JSONDecodeError for {field_name_for_log}. Falling back to comma separation."
            )
            parsed_list = [item.strip() for item in input_str.split(",") if item.strip()]

        if not parsed_list:
            logger.warning(f"Env var {field_name_for_log} resulted in an empty parsed list.")
        return parsed_list

    @model_validator(mode="after")
    def _process_complex_fields_and_debug_overrides(self) -> "Settings":
        self._parsed_backend_cors_origins = self._parse_string_list_input_helper(
            self.backend_cors_origins_env_str, "BACKEND_CORS_ORIGINS"
        )

        if self.DEBUG:
            if self.LOG_LEVEL != "DEBUG":
                logger.info("DEBUG mode is ON. Overriding LOG_LEVEL to DEBUG.")
                self.LOG_LEVEL = "DEBUG"
            if not self.DB_ECHO:
                logger.info("DEBUG mode is ON. Overriding DB_ECHO to True.")
                self.DB_ECHO = True

        # Error paths fall back to DEFAULT_ROLE, so it may never be a privileged role.
        if self.DEFAULT_ROLE in PRIVILEGED_ROLES:
            raise ValueError(f"DEFAULT_ROLE cannot be a privileged role: {self.DEFAULT_ROLE!r}")

        if self.SECRET_KEY == DEV_SECRET_KEY:
            if self.ENVIRONMENT == "production":
                raise ValueError("SECRET_KEY must be set in production.")
            logger.warning("SECRET_KEY is the development default; set it outside development.")
        return self

    @property
    def BACKEND_CORS_ORIGINS(self) -> list[str]:
        return self._parsed_backend_cors_origins

    def _build_postgres_dsn(self, base_dsn: PostgresDsn | None) -> PostgresDsn:
        driver_prefix = "postgresql+asyncpg://"

        if base_dsn:
            db_url_str = str(base_dsn)
            if db_url_str.startswith(driver_prefix):
                return base_dsn
            if "://" in db_url_str:
                return PostgresDsn(driver_prefix + db_url_str.split("://", 1)[1])
            raise ValueError(f"Malformed base DSN for DB (missing scheme?): {db_url_str}")
        return PostgresDsn(
            f"{driver_prefix}{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @computed_field(repr=False)
    @property
    def ASYNC_SQLALCHEMY_DATABASE_URL(self) -> PostgresDsn:
        return self._build_postgres_dsn(self.PRIMARY_DATABASE_URL_ENV)

    @property
    def platform_configured(self) -> bool:
        return bool(self.SUPABASE_URL and self.SUPABASE_ANON_KEY)


settings = Settings()
