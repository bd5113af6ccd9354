"""Service configuration loaded from the environment or a ``.env`` file.

Every variable carries the ``TASKS_`` prefix, e.g. ``TASKS_JWT_SECRET``.
The signing secret has no default: building ``Settings`` without it
raises a ``pydantic.ValidationError`` and the service does not start.
"""
from __future__ import annotations

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from auth import DEFAULT_ALGORITHM, DEFAULT_BCRYPT_ROUNDS, DEFAULT_TOKEN_TTL


class Settings(BaseSettings):
    """Typed access to the service's environment."""

    model_config = SettingsConfigDict(
        env_prefix="TASKS_",
        env_file=".env",
        extra="ignore",
    )

    DATABASE_URL: str = "sqlite:///./tasks.db"
    """SQLAlchemy URL of the relational store."""

    JWT_SECRET: SecretStr
    """Key used to sign and verify session tokens. Required."""

    JWT_ALGORITHM: str = DEFAULT_ALGORITHM

    TOKEN_TTL_SECONDS: int = Field(DEFAULT_TOKEN_TTL, gt=0)
    """Lifetime of an issued session token."""

    BCRYPT_ROUNDS: int = Field(DEFAULT_BCRYPT_ROUNDS, ge=4, le=31)

    ADMIN_USER: str | None = None
    ADMIN_PASSWORD: SecretStr | None = None
    """Optional admin credentials seeded once at startup."""

    STRICT_BEARER: bool = False
    """Reject Authorization headers whose scheme is not ``Bearer``."""

    LOG_LEVEL: str = "INFO"
    SERVER_HOST: str = "127.0.0.1"
    SERVER_PORT: int = 3000

    @field_validator("JWT_SECRET")
    @classmethod
    def secret_not_empty(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("JWT_SECRET must not be empty")
        return v

    @property
    def jwt_secret(self) -> str:
        return self.JWT_SECRET.get_secret_value()

    @property
    def admin_credentials(self) -> tuple[str, str] | None:
        if not self.ADMIN_USER or self.ADMIN_PASSWORD is None:
            return None
        password = self.ADMIN_PASSWORD.get_secret_value()
        if not password:
            return None
        return self.ADMIN_USER, password
