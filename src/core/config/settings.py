# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

Settings are loaded from environment variables (and an optional ``.env``
file). Each concern has its own subsettings class with a dedicated env
prefix; the Settings class aggregates them and get_settings() returns a
cached singleton for dependency injection.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> settings.grader.timeout
    30.0
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TenantDatabaseSettings(BaseSettings):
    """Tenant database configuration.

    Every school owns an isolated database named
    ``{database_prefix}{tenant_code}`` on the configured server.

    Attributes:
        driver: SQLAlchemy async driver name.
        user: Database username for tenant databases.
        password: Database password for tenant databases.
        host: Database host address.
        port: Database port number.
        database_prefix: Prefix prepended to the tenant code.
        pool_size: Connection pool size per tenant.
        max_overflow: Maximum overflow connections per tenant.
        max_cached_tenants: Upper bound on cached tenant engines.
    """

    model_config = SettingsConfigDict(
        env_prefix="TENANT_DB_",
        extra="ignore",
    )

    driver: str = "postgresql+asyncpg"
    user: str = "learnpath"
    password: SecretStr = SecretStr("learnpath_tenant_password")
    host: str = "learnpath-tenant-db"
    port: int = 5432
    database_prefix: str = "learnpath_"
    pool_size: int = 10
    max_overflow: int = 10
    max_cached_tenants: int = 256

    def url_for(self, tenant_code: str) -> str:
        """Build the async database URL for a tenant."""
        pwd = self.password.get_secret_value()
        return (
            f"{self.driver}://{self.user}:{pwd}@{self.host}:{self.port}"
            f"/{self.database_prefix}{tenant_code}"
        )


class RedisSettings(BaseSettings):
    """Redis configuration for the background task broker.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password.
        database: Redis database number.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = "learnpath-redis"
    port: int = 6379
    password: SecretStr = SecretStr("learnpath_redis_password")
    database: int = 0

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        pwd = self.password.get_secret_value()
        return f"redis://:{pwd}@{self.host}:{self.port}/{self.database}"


class GraderSettings(BaseSettings):
    """External AI grading service configuration.

    Attributes:
        base_url: Base URL of the grading service.
        timeout: Request timeout in seconds.
        enabled: Whether submissions are sent to the grader at all.
        max_results: Knowledge base results the grader may consult.
    """

    model_config = SettingsConfigDict(
        env_prefix="GRADER_",
        extra="ignore",
    )

    base_url: str = "http://learnpath-grader:8000"
    timeout: float = 30.0
    enabled: bool = True
    max_results: int = 5


class ProgressSettings(BaseSettings):
    """Progress tracking and sequence gating configuration.

    Attributes:
        default_passing_threshold: Score percentage needed to pass a quiz.
        module_unlock_threshold: Progress percentage at which a module
            counts as completed for unlocking the next one.
        dashboard_recent_limit: Recent module rows shown on a dashboard.
        default_page_size: Page size used when the caller gives none.
        max_page_size: Largest page size accepted by listings.
    """

    model_config = SettingsConfigDict(
        env_prefix="PROGRESS_",
        extra="ignore",
    )

    default_passing_threshold: float = 60.0
    module_unlock_threshold: float = 90.0
    dashboard_recent_limit: int = 5
    default_page_size: int = 10
    max_page_size: int = 100


class JWTSettings(BaseSettings):
    """JWT authentication configuration.

    Attributes:
        secret_key: Secret key for verifying tokens.
        algorithm: JWT signing algorithm.
        access_token_expire_minutes: Access token expiration time.
    """

    model_config = SettingsConfigDict(
        env_prefix="JWT_",
        extra="ignore",
    )

    secret_key: SecretStr = SecretStr("change-this-in-production")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(
        default=30,
        validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )


class CORSSettings(BaseSettings):
    """CORS configuration for API.

    Attributes:
        origins: Comma-separated list of allowed origins.
        allow_credentials: Whether to allow credentials.
        allow_methods: Allowed HTTP methods.
        allow_headers: Allowed HTTP headers.
    """

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        extra="ignore",
    )

    origins: str = "http://localhost:3000,http://localhost:5173"
    allow_credentials: bool = True
    allow_methods: list[str] = ["*"]
    allow_headers: list[str] = ["*"]

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into a list."""
        return [origin.strip() for origin in self.origins.split(",") if origin.strip()]


class APISettings(BaseSettings):
    """API server configuration.

    Attributes:
        host: Host to bind to.
        port: Port to listen on.
        workers: Number of worker processes.
        reload: Whether to enable auto-reload.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 34000
    workers: int = 2
    reload: bool = False


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        default_language: Language used for error messages when the
            caller expresses no preference.
        tenant_db: Tenant database settings.
        redis: Redis settings.
        grader: AI grading service settings.
        progress: Progress tracking settings.
        jwt: JWT authentication settings.
        cors: CORS settings.
        api: API server settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"
    default_language: Literal["en", "fr"] = "fr"

    # Subsettings - loaded with their own env prefixes
    tenant_db: TenantDatabaseSettings = Field(default_factory=TenantDatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    grader: GraderSettings = Field(default_factory=GraderSettings)
    progress: ProgressSettings = Field(default_factory=ProgressSettings)
    jwt: JWTSettings = Field(default_factory=JWTSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    api: APISettings = Field(default_factory=APISettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment == "production":
            default_jwt_secret = "change-this-in-production"
            if self.jwt.secret_key.get_secret_value() == default_jwt_secret:
                raise ValueError(
                    "JWT secret key must be changed from default in production. "
                    "Set JWT_SECRET_KEY environment variable."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
