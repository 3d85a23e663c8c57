"""
Storefront
Centralized Configuration Management

Configuration is read from environment variables (and an optional .env file)
through Pydantic settings, one class per subsystem.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL (primary backend) Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_", populate_by_name=True)

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="storefront", description="Database name")
    user: str = Field(default="postgres", description="Database user")
    password: SecretStr = Field(default="postgres", description="Database password")
    url: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
        description="Full connection string (overrides host/port/credentials)",
    )
    pool_min_size: int = Field(default=1, description="Connections opened at startup")
    pool_max_size: int = Field(default=20, description="Connection pool capacity")
    pool_timeout: float = Field(default=5.0, description="Seconds to wait for a free connection")
    connect_timeout: float = Field(default=2.0, description="Seconds to wait when opening a connection")
    command_timeout: Optional[float] = Field(default=None, description="Per-statement timeout in seconds")
    echo: bool = Field(default=False, description="Log every SQL statement")

    @property
    def dsn(self) -> str:
        """Connection string for asyncpg - uses DATABASE_URL if set"""
        if self.url:
            return self.url
        return f"postgresql://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class SQLiteSettings(BaseSettings):
    """SQLite (secondary, embedded backend) Configuration"""

    model_config = SettingsConfigDict(env_prefix="SQLITE_")

    path: str = Field(default="storefront.db", description="Database file path")
    busy_timeout_ms: int = Field(default=5000, description="Wait for a locked database file")


class AdminSeedSettings(BaseSettings):
    """Administrative account created when none exists"""

    model_config = SettingsConfigDict(env_prefix="ADMIN_")

    username: str = Field(default="admin", description="Admin username")
    email: str = Field(default="admin@storefront.local", description="Admin email")
    password: SecretStr = Field(default="admin123", description="Admin password")
    first_name: str = Field(default="Admin", description="Admin first name")
    last_name: str = Field(default="User", description="Admin last name")


class SecuritySettings(BaseSettings):
    """Security and Authentication Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    jwt_secret_key: SecretStr = Field(default="jwt-secret-change-me", alias="JWT_SECRET_KEY", description="JWT secret key")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM", description="JWT algorithm")
    jwt_expiration_hours: int = Field(default=24, alias="JWT_EXPIRATION_HOURS", description="JWT expiration in hours")

    # Rate limiting
    rate_limit_requests: int = Field(default=100, alias="RATE_LIMIT_REQUESTS", description="Rate limit requests")
    rate_limit_window_seconds: int = Field(default=900, alias="RATE_LIMIT_WINDOW_SECONDS", description="Rate limit window")

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="storefront", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=3000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    sqlite: SQLiteSettings = Field(default_factory=SQLiteSettings)
    admin: AdminSeedSettings = Field(default_factory=AdminSeedSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Production deployments require TLS to the primary database"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
