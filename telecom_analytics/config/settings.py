"""
Telecom Analytics Platform
Centralized Configuration Management

This module provides configuration management using Pydantic settings with
environment variable support, validation, and type safety.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator, model_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="jio_telecom", alias="database", description="Database name")
    user: str = Field(default="telecom", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Database URL (overrides host/port)")
    create_derived_tables: bool = Field(
        default=True,
        description="Create pipeline-owned tables on start-up if missing",
    )

    @property
    def async_url(self) -> str:
        """Async database URL - uses DATABASE_URL if set, otherwise asyncpg from host/port"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Redis Cache Configuration"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=50, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    decode_responses: bool = Field(default=True, description="Decode responses to strings")
    url: Optional[str] = Field(default=None, alias="REDIS_URL", description="Redis URL (overrides host/port)")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class SecuritySettings(BaseSettings):
    """API Security Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8088"],
        description="Allowed CORS origins"
    )


class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or console")


class PipelineSettings(BaseSettings):
    """Derived-metrics refresh pipeline configuration"""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    name: str = Field(default="telecom_metrics_refresh", description="Pipeline name, used as the run lock key")

    # Timeouts
    source_timeout_seconds: float = Field(default=30.0, gt=0, description="Timeout for a single source read or write")
    write_timeout_seconds: float = Field(default=60.0, gt=0, description="Timeout for a materialized table replace")

    # Run lock
    lock_lease_seconds: int = Field(default=3600, gt=0, description="Run lock lease length")
    lock_wait_seconds: float = Field(default=0.0, ge=0, description="How long to wait for a busy run lock")
    lock_poll_interval_seconds: float = Field(default=1.0, gt=0, description="Run lock poll interval")

    # Data quality
    strict_validation: bool = Field(default=False, description="Treat any validation finding as fatal")
    normalize_text: bool = Field(default=True, description="Normalize text and amount fields before aggregation")

    # Risk classification
    risk_medium_after_days: int = Field(default=90, gt=0, description="Days without payment before Medium risk")
    risk_high_after_days: int = Field(default=180, gt=0, description="Days without payment before High risk")

    # Scheduling and serving
    schedule_cron: str = Field(default="0 2 * * *", description="Cron expression for the scheduled refresh")
    views_cache_ttl_seconds: int = Field(default=600, ge=0, description="TTL of cached on-demand views")

    @model_validator(mode="after")
    def validate_risk_thresholds(self) -> "PipelineSettings":
        """Medium threshold must come before High threshold"""
        if self.risk_medium_after_days >= self.risk_high_after_days:
            raise ValueError("risk_medium_after_days must be smaller than risk_high_after_days")
        return self


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
    )

    # Application
    app_name: str = Field(default="telecom-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)

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
        """Check if running in production"""
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
