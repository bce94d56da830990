"""Centralized configuration management using Pydantic Settings.

This module provides typed configuration for all application settings,
loaded from environment variables with sensible defaults.

Usage:
    from kb_api.config import get_settings
    settings = get_settings()
    timeout = settings.sandbox.timeout_sec
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_bool(v):
    if isinstance(v, str):
        return v.lower() in ("1", "true", "yes")
    return bool(v)


class RedisSettings(BaseSettings):
    """Redis connection configuration."""

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")

    host: str = Field(default="redis", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: str = Field(default="", description="Redis password")
    max_connections: int = Field(default=50, description="Maximum pool connections")
    pool_timeout_sec: float = Field(default=5.0, description="Pool timeout in seconds")
    health_check_interval: int = Field(default=30, description="Health check interval in seconds")
    retry_on_timeout: bool = Field(default=True, description="Retry on timeout")
    socket_timeout: float = Field(default=5.0, description="Socket timeout in seconds")
    socket_connect_timeout: float = Field(default=5.0, description="Socket connect timeout in seconds")


class CorsSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    origins_raw: str = Field(
        default="http://localhost:8080",
        validation_alias="CORS_ORIGINS",
    )
    origins_regex: str = Field(
        default="",
        validation_alias="CORS_ORIGINS_REGEX",
        description="Regex pattern for origins",
    )

    @property
    def origins(self) -> list[str]:
        """Parse comma-separated origins into list."""
        return [o.strip() for o in self.origins_raw.split(",") if o.strip()]

    @property
    def allow_credentials(self) -> bool:
        """Credentials not allowed with wildcard origins."""
        return self.origins != ["*"] and not self.origins_regex


class DebugSettings(BaseSettings):
    """Debug flags configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    request: bool = Field(default=False, alias="request_debug")
    redis: bool = Field(default=False, alias="redis_debug")

    @field_validator("*", mode="before")
    @classmethod
    def parse_bool(cls, v):
        return _parse_bool(v)


class SandboxSettings(BaseSettings):
    """Snippet execution configuration."""

    model_config = SettingsConfigDict(env_prefix="SANDBOX_", extra="ignore")

    enabled: bool = Field(default=True, description="Enable real Python and JavaScript evaluation")
    timeout_sec: float = Field(default=5.0, gt=0, description="Wall-clock evaluation timeout")
    kill_grace_sec: float = Field(
        default=1.0, ge=0, description="Extra time before the worker process is killed"
    )
    max_code_length: int = Field(default=10_000, gt=0, description="Maximum snippet length")
    max_output_chars: int = Field(default=50_000, gt=0, description="Captured output cap")
    memory_limit_mb: int = Field(default=256, gt=0, description="Memory cap for the Python worker and the V8 heap")
    log_size: int = Field(default=1000, gt=0, description="Execution log entries kept in memory")

    @field_validator("enabled", mode="before")
    @classmethod
    def parse_enabled(cls, v):
        return _parse_bool(v)


class RateLimitSettings(BaseSettings):
    """Fixed-window rate limit configuration."""

    model_config = SettingsConfigDict(env_prefix="RATE_LIMIT_", extra="ignore")

    backend: Literal["memory", "redis"] = Field(default="memory", description="Counter store")
    window_sec: int = Field(default=60, gt=0, description="Window length in seconds")
    max_requests: int = Field(default=10, gt=0, description="Executions per caller per window")
    assistant_max_requests: int = Field(
        default=20, gt=0, description="AI assistant calls per caller per window"
    )


class AuthSettings(BaseSettings):
    """Identity verification configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    supabase_url: str = Field(default="", alias="supabase_url")
    supabase_anon_key: str = Field(default="", alias="supabase_anon_key")
    static_tokens_raw: str = Field(default="", alias="auth_static_tokens")
    timeout_sec: float = Field(default=5.0, alias="auth_timeout_sec")

    @property
    def static_tokens(self) -> dict[str, str]:
        """Parse ``token:user,token2:user2`` into a token -> caller id map."""
        tokens: dict[str, str] = {}
        for pair in self.static_tokens_raw.split(","):
            token, sep, user = pair.strip().partition(":")
            if sep and token and user:
                tokens[token] = user
        return tokens


class OpenAISettings(BaseSettings):
    """AI assistant upstream configuration."""

    model_config = SettingsConfigDict(env_prefix="OPENAI_", extra="ignore")

    api_key: str = Field(default="", description="OpenAI API key")
    base_url: str = Field(default="https://api.openai.com/v1")
    model: str = Field(default="gpt-4o-mini")
    temperature: float = Field(default=0.3)
    max_tokens: int = Field(default=1000)
    timeout_sec: float = Field(default=30.0)


class Settings:
    """Main application settings combining all configuration sections.

    This is not a BaseSettings subclass to avoid env var conflicts.
    Each subsetting is loaded independently with its own prefix.
    """

    def __init__(self) -> None:
        self.redis = RedisSettings()
        self.cors = CorsSettings()
        self.debug = DebugSettings()
        self.sandbox = SandboxSettings()
        self.rate_limit = RateLimitSettings()
        self.auth = AuthSettings()
        self.openai = OpenAISettings()


@lru_cache
def get_settings() -> Settings:
    """Get cached Settings instance (singleton pattern)."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear cached settings (useful for testing)."""
    get_settings.cache_clear()
