"""
Runtime configuration for the Personal Finance API.

Values come from the environment; SECRET_KEY has no default and the app
refuses to start without it.
"""
import os
from typing import List

from pydantic import BaseModel, ValidationError, field_validator


class ConfigError(RuntimeError):
    """Raised when the service cannot start with the given configuration."""


class Settings(BaseModel):
    secret_key: str = ""
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7
    bcrypt_rounds: int = 10

    database_url: str = "mongodb://localhost:27017"
    database_name: str = "finance"
    database_timeout_ms: int = 5000

    allow_delete_all: bool = True
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"
    port: int = 8000

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables named after the fields, upper-cased."""
        values = {name: os.getenv(name.upper()) for name in cls.model_fields}
        try:
            return cls.model_validate({name: value for name, value in values.items() if value is not None})
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc.errors()[0]['loc'][0]}")

    def check(self) -> "Settings":
        """Fail fast on settings the service cannot run with."""
        if not self.secret_key or not self.secret_key.strip():
            raise ConfigError("SECRET_KEY must be set")
        if self.access_token_expire_minutes <= 0:
            raise ConfigError("ACCESS_TOKEN_EXPIRE_MINUTES must be positive")
        if self.database_timeout_ms <= 0:
            raise ConfigError("DATABASE_TIMEOUT_MS must be positive")
        return self
