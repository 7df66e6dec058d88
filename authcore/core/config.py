"""Application configuration using Pydantic settings."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Service configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="AUTHCORE_",
        extra="ignore",
    )

    environment: Literal["local", "test", "staging", "production"] = Field(default="local")
    service_name: str = Field(default="authcore")
    database_url: str = Field(default="sqlite:///./data/authcore.db")
    sql_echo: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)

    jwt_secret: str | None = Field(default=None)
    jwt_refresh_secret: str | None = Field(default=None)
    jwt_algorithm: str = Field(default="HS256")
    access_token_ttl: int = Field(default=1800)
    refresh_token_ttl: int = Field(default=86400)
    remember_me_ttl: int = Field(default=604800)
    session_retention_days: int = Field(default=7)
    session_purge_interval: int = Field(default=3600)
    max_failed_logins: int = Field(default=5)

    permission_cache_ttl: int = Field(default=3600)
    redis_url: str | None = Field(default=None)
    redis_token: str | None = Field(default=None)
    redis_cache_prefix: str = Field(default="authcore")

    audit_topic_arn: str | None = Field(default=None)
    audit_source: str = Field(default="authcore")
    audit_worker_enabled: bool = Field(default=True)
    audit_queue_size: int = Field(default=10000)

    refresh_cookie_name: str = Field(default="authcore_refresh_token")
    csrf_cookie_name: str = Field(default="authcore_csrf_token")
    cookie_secure: bool = Field(default=True)
    default_permissions: List[str] = Field(
        default_factory=lambda: [
            "role.view",
            "role.manage",
            "role.assign",
            "permission.manage",
            "audit.view",
        ]
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.upper()

    @field_validator(
        "jwt_secret",
        "jwt_refresh_secret",
        "redis_url",
        "redis_token",
        "audit_topic_arn",
        mode="before",
    )
    @classmethod
    def empty_string_to_none(cls, value: str | None) -> str | None:
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @field_validator("permission_cache_ttl", mode="before")
    @classmethod
    def ensure_int_ttl(cls, value: int | str | None) -> int | str | None:
        if value in (None, ""):
            return 3600
        return value


@lru_cache
def get_settings() -> AppSettings:
    """Return cached application settings instance."""

    return AppSettings()
