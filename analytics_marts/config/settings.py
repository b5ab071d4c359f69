"""
Analytics Marts
Centralized Configuration Management

Pydantic settings with environment variable support for the data paths,
the synthetic data generator, project variables and logging.
"""

from datetime import date
from functools import lru_cache
from typing import Any, Dict

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DataLakeSettings(BaseSettings):
    """Raw and target storage locations"""

    model_config = SettingsConfigDict(env_prefix="DATA_")

    raw_path: str = Field(default="./data/raw", description="Raw source tables path")
    target_path: str = Field(default="./data/target", description="Materialized models path")
    file_format: str = Field(default="parquet", description="Storage file format")

    @field_validator("file_format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Only parquet is supported for materialized relations"""
        if v.lower() != "parquet":
            raise ValueError("file_format must be 'parquet'")
        return v.lower()


class GeneratorSettings(BaseSettings):
    """Synthetic data generation parameters"""

    model_config = SettingsConfigDict(env_prefix="GENERATOR_")

    n_users: int = Field(default=5_000, ge=1, description="Number of users")
    n_products: int = Field(default=200, ge=1, description="Number of products")
    n_events: int = Field(default=200_000, ge=0, description="Number of events")
    n_sales: int = Field(default=20_000, ge=0, description="Number of sales")
    seed: int = Field(default=42, description="Random seed")
    end_date: date = Field(default=date(2024, 12, 31), description="Last day of generated activity")
    signup_window_days: int = Field(default=730, ge=1, description="Days of signup history")
    activity_window_days: int = Field(default=730, ge=1, description="Days of event and sales history")
    refund_rate: float = Field(default=0.10, ge=0.0, le=1.0, description="Share of refunded orders")


class ProjectSettings(BaseSettings):
    """Model project variables and run policy"""

    model_config = SettingsConfigDict(env_prefix="MARTS_")

    session_timeout_minutes: int = Field(default=30, ge=0, description="Sessionization gap threshold")
    fail_fast: bool = Field(default=False, description="Stop the run at the first model error")

    @property
    def vars(self) -> Dict[str, Any]:
        """Project variables injected into models"""
        return {"session_timeout_minutes": self.session_timeout_minutes}


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="text", alias="LOG_FORMAT", description="Log format: json or text")


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

    app_name: str = Field(default="analytics-marts", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    version: str = Field(default="1.0.0", description="Application version")

    data_lake: DataLakeSettings = Field(default_factory=DataLakeSettings)
    generator: GeneratorSettings = Field(default_factory=GeneratorSettings)
    project: ProjectSettings = Field(default_factory=ProjectSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
