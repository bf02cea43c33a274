"""
Pricing & Promo Analytics Pipeline
Centralized Configuration Management

This module provides configuration management using Pydantic settings with
environment variable support, validation, and type safety. The pipeline
parameters live here as well: one frozen snapshot per run, swapped as a whole
through the ParameterStore.
"""

import re
import threading
from functools import lru_cache
from typing import Any, Optional, Tuple

import structlog
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)

PERIOD_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class DatabaseSettings(BaseSettings):
    """BI sink database configuration"""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    url: str = Field(
        default="sqlite:///./data/curated/pricing_promo.db",
        description="SQLAlchemy URL of the BI-facing database",
    )
    password: Optional[SecretStr] = Field(default=None, description="Password injected into the URL")
    echo: bool = Field(default=False, description="Echo SQL statements")

    @property
    def sync_url(self) -> str:
        """Database URL with the secret password substituted for ``{password}``"""
        if self.password and "{password}" in self.url:
            return self.url.replace("{password}", self.password.get_secret_value())
        return self.url


class DataLakeSettings(BaseSettings):
    """Data Lake Storage Configuration"""

    model_config = SettingsConfigDict(env_prefix="DATA_")

    lake_path: str = Field(default="./data", description="Data lake root path")
    raw_path: str = Field(default="./data/raw", description="Raw Olist extracts")
    curated_path: str = Field(default="./data/curated", description="Curated BI tables")

    default_format: str = Field(default="csv", description="Format of the raw extracts: csv or parquet")


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")


class DataQualitySettings(BaseSettings):
    """Data Quality Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    enable_data_quality_checks: bool = Field(
        default=True,
        alias="ENABLE_DATA_QUALITY_CHECKS",
        description="Validate stage outputs before publishing",
    )
    strict: bool = Field(
        default=False,
        alias="DATA_QUALITY_STRICT",
        description="Treat warning-level check failures as fatal",
    )


class PipelineParameters(BaseSettings):
    """
    Run parameters shared by every pipeline stage.

    Instances are frozen: a run reads one snapshot and threads it through all
    stages, so the discount threshold and reconciliation tolerance cannot
    differ between stages of the same run.
    """

    model_config = SettingsConfigDict(env_prefix="PIPELINE_", frozen=True)

    discount_threshold: float = Field(
        default=0.05, ge=0, lt=1,
        description="Fraction below the baseline median that counts as a discount",
    )
    min_baseline_n: int = Field(
        default=3, ge=1,
        description="Minimum baseline sample size for a trusted discount",
    )
    window_start: str = Field(default="2016-09", description="First period (YYYY-MM) of the analysis window")
    window_end: str = Field(default="2018-09", description="Last period (YYYY-MM) of the analysis window")
    min_price: float = Field(default=0.01, ge=0, description="Item price floor (exclusive)")
    min_freight: float = Field(default=0.0, ge=0, description="Item freight floor (inclusive)")

    reconciliation_tolerance: float = Field(
        default=0.01, ge=0,
        description="Max absolute gap between payments and revenue + freight",
    )
    category_min_lines: int = Field(default=100, ge=0, description="Support floor for category rollup rows")
    sku_min_lines: int = Field(default=50, ge=0, description="Support floor for SKU rollup rows")
    min_cohort_size: int = Field(default=30, ge=0, description="Offset-0 size floor for the filtered retention view")

    sensitivity_thresholds: Tuple[float, ...] = Field(
        default=(0.03, 0.05, 0.10),
        description="Discount thresholds compared by the sensitivity report",
    )
    small_gap_ceiling: float = Field(
        default=5.0, ge=0,
        description="Upper bound of a 'small' reconciliation gap",
    )

    @field_validator("window_start", "window_end")
    @classmethod
    def validate_period(cls, v: str) -> str:
        """Validate YYYY-MM period format"""
        if not PERIOD_PATTERN.match(v):
            raise ValueError(f"Period must be formatted YYYY-MM, got {v!r}")
        return v

    @field_validator("sensitivity_thresholds")
    @classmethod
    def validate_thresholds(cls, v: Tuple[float, ...]) -> Tuple[float, ...]:
        if any(t < 0 or t >= 1 for t in v):
            raise ValueError("Sensitivity thresholds must lie in [0, 1)")
        return tuple(sorted(set(v)))

    @model_validator(mode="after")
    def validate_window(self) -> "PipelineParameters":
        if self.window_start > self.window_end:
            raise ValueError(
                f"window_start {self.window_start} is after window_end {self.window_end}"
            )
        return self


class ParameterStore:
    """
    Process-wide holder of the current PipelineParameters snapshot.

    ``get()`` returns the same immutable object until ``update()`` swaps in a
    fully validated replacement; a rejected update leaves the current snapshot
    untouched.

    Example:
        store = ParameterStore()
        params = store.get()
        store.update(discount_threshold=0.10)
    """

    def __init__(self, initial: Optional[PipelineParameters] = None):
        self._lock = threading.Lock()
        self._current = initial or PipelineParameters()

    def get(self) -> PipelineParameters:
        """Current parameter snapshot"""
        return self._current

    def update(self, **changes: Any) -> PipelineParameters:
        """Validate ``changes`` against the current snapshot and swap it in"""
        with self._lock:
            merged = {**self._current.model_dump(), **changes}
            candidate = PipelineParameters(**merged)
            self._current = candidate

        logger.info("Pipeline parameters updated", changes=sorted(changes))
        return candidate


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
    app_name: str = Field(default="pricing-promo-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    data_lake: DataLakeSettings = Field(default_factory=DataLakeSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    data_quality: DataQualitySettings = Field(default_factory=DataQualitySettings)
    pipeline: PipelineParameters = Field(default_factory=PipelineParameters)

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

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


@lru_cache()
def get_parameter_store() -> ParameterStore:
    """Process-wide parameter store seeded from the PIPELINE_* settings"""
    return ParameterStore(get_settings().pipeline)
