"""
Application configuration.

Loads settings from environment variables with development defaults.
The fallbacks for secrets exist for local development only.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from clubhouse.core.models import AuthMode, Role


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ==========================================================================
    # Environment
    # ==========================================================================

    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # ==========================================================================
    # API Server
    # ==========================================================================

    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # ==========================================================================
    # Document store
    # ==========================================================================

    # Empty means the in-memory store
    database_url: str = ""
    database_name: str = "clubhouse"
    store_timeout_seconds: float = 10.0

    # ==========================================================================
    # Authentication
    # ==========================================================================

    auth_mode: AuthMode = AuthMode.SESSION

    jwt_secret_key: str = "dev-jwt-secret-change-in-production"
    jwt_algorithm: str = "HS256"

    access_token_ttl_seconds: int = 3600          # 1 hour
    refresh_token_ttl_seconds: int = 86400 * 7    # 7 days

    access_cookie_name: str = "session_token"
    refresh_cookie_name: str = "refresh_token"
    oauth_state_cookie_name: str = "oauth_state"
    oauth_state_ttl_seconds: int = 300
    cookie_secure: bool = False

    min_password_length: int = 8
    password_hash_iterations: int = 200_000
    registration_default_role: Role = Role.CLASSES

    # OAuth providers (optional)
    google_client_id: str = ""
    google_client_secret: str = ""
    github_client_id: str = ""
    github_client_secret: str = ""
    oauth_redirect_url: str = "http://localhost:8000/auth/callback"
    post_login_redirect: str = "/api/me"

    # ==========================================================================
    # Optional Services
    # ==========================================================================

    sentry_dsn: str = ""

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def uses_jwt(self) -> bool:
        return self.auth_mode == AuthMode.JWT

    @property
    def use_mongo(self) -> bool:
        """Whether the MongoDB store should be used."""
        return bool(self.database_url)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
