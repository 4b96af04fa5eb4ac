"""Typed application settings loaded from the environment via pydantic-settings."""

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

INSECURE_SECRETS = {"dev-secret", "changeme", "change-me", "secret", "password"}


class Settings(BaseSettings):
    """Settings for the TaskMaster API.

    Every field can be overridden by an environment variable of the same
    name (case-insensitive) or by a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "development"
    port: int = 5000
    log_level: str = "INFO"

    database_url: str = "sqlite:///./taskmaster.db"

    jwt_secret: str = "dev-secret"
    jwt_expires_minutes: int = 7 * 24 * 60

    cors_origins: str = "http://localhost:3000"

    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max: int = 100

    max_page_size: int = 100

    # Optional bootstrap admin account
    admin_email: str = ""
    admin_password: str = ""
    admin_name: str = "Administrator"

    @field_validator("log_level")
    @classmethod
    def log_level_upper(cls, v: str) -> str:
        return (v or "INFO").strip().upper()

    @field_validator("jwt_expires_minutes", "max_page_size", "rate_limit_window_seconds")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v

    @model_validator(mode="after")
    def validate_production_secrets(self):
        if not self.is_production():
            return self
        secret = (self.jwt_secret or "").strip()
        if not secret or secret in INSECURE_SECRETS:
            raise ValueError("JWT_SECRET must be set to a non-default value in production")
        if len(secret) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters in production")
        return self

    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    def is_development(self) -> bool:
        return self.app_env.strip().lower() == "development"

    def rate_limiting_enabled(self) -> bool:
        return self.rate_limit_max > 0

    def get_cors_origins(self) -> list[str]:
        """Parse comma-separated origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
