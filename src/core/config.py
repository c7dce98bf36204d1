"""Application configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="carelink-backend", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    web_concurrency: int = Field(
        default=1,
        ge=1,
        le=1,
        description="Worker processes. Live queries and sessions are held in process, so only one is supported",
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Auth redirects
    auth_redirect_url: str = Field(
        default="http://localhost:5173",
        description="Redirect URL after email verification and OAuth sign-in",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(..., description="Supabase signing key JWK (JSON string) for JWT token verification")
    jwt_audience: str = Field(default="authenticated", description="Required aud claim of access tokens")

    # Document store
    store_backend: Literal["supabase", "memory"] | None = Field(
        default=None,
        description="Document store backend. Defaults to 'supabase' in production and 'memory' for tests.",
    )

    # Invite codes
    invite_code_length: int = Field(default=6, ge=4, le=12, description="Length of generated invite codes")
    invite_code_ttl_days: int = Field(default=7, ge=1, description="Days until an invite code expires")

    # Recurring templates
    template_write_delay_ms: int = Field(
        default=100,
        ge=0,
        description="Pause between sequenced per-date writes when applying a template",
    )
    template_scheduler_poll_seconds: int = Field(
        default=60,
        ge=1,
        description="How often the template scheduler checks for due jobs",
    )

    # Sessions
    session_idle_timeout_seconds: int = Field(
        default=86400,
        description="Drop in-memory session contexts idle for longer than this",
    )

    # Request logging
    slow_request_ms: int = Field(default=1000, ge=0, description="Log requests slower than this at WARNING")

    @model_validator(mode="after")
    def set_store_backend_default(self) -> "Settings":
        """Pick the store backend from the environment when not set explicitly.

        The test environment runs against the in-memory store; every other
        environment talks to Supabase.
        """
        if self.store_backend is None:
            self.store_backend = "memory" if self.app_env == "test" else "supabase"

        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
