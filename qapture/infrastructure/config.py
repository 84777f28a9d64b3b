"""
Centralized configuration management for the quality-management scoring application.

Provides environment-specific configuration with validation, type safety,
and comprehensive settings management using Pydantic.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

DEFAULT_CATALOG_NAME_MAP: dict[str, str] = {
    "Telefonie - Inbound": "Bewertung Inbound",
}


class DatabaseConfig(BaseSettings):
    """
    Database configuration settings for the catalog, mapping and submission stores.

    Example:
        >>> db_config = DatabaseConfig(backend="sqlite", sqlite_path="./test.db")
        >>> print(db_config.get_connection_url())
        >>> # sqlite:///./test.db
    """

    backend: Literal["sqlite", "mysql"] = Field("sqlite", description="Database backend type")

    # SQLite settings
    sqlite_path: str | None = Field("./qapture.db", description="SQLite database file path")

    # MySQL settings
    mysql_host: str | None = Field("localhost", description="MySQL host")
    mysql_port: int | None = Field(3306, ge=1, le=65535, description="MySQL port")
    mysql_user: str | None = Field("root", description="MySQL username")
    mysql_password: str | None = Field("", description="MySQL password")
    mysql_database: str | None = Field("qapture", description="MySQL database name")
    mysql_charset: str = Field("utf8mb4", description="MySQL character set")

    # Connection settings
    pool_pre_ping: bool = Field(True, description="Enable connection pool pre-ping")
    pool_recycle: int = Field(3600, ge=60, description="Connection pool recycle time (seconds)")
    echo: bool = Field(False, description="Enable SQL query logging")

    model_config = {"env_prefix": "DB_", "case_sensitive": False}

    @field_validator("sqlite_path")
    def validate_sqlite_path(cls, v):
        """Ensure a .db suffix on file-backed SQLite paths."""
        if v and v != ":memory:":
            path = Path(v)
            if not path.suffix:
                v = str(path.with_suffix(".db"))
        return v

    @model_validator(mode="after")
    def validate_mysql_config(self):
        """Validate MySQL configuration completeness."""
        if self.backend == "mysql":
            missing = []
            if not self.mysql_host:
                missing.append("mysql_host")
            if not self.mysql_user:
                missing.append("mysql_user")
            if not self.mysql_database:
                missing.append("mysql_database")
            if missing:
                raise ValueError(f"MySQL backend requires: {', '.join(missing)}")
        return self

    def get_connection_url(self) -> str:
        """
        Generate database connection URL.

        Raises:
            ValueError: If backend is unsupported
        """
        if self.backend == "sqlite":
            return f"sqlite:///{self.sqlite_path}"
        elif self.backend == "mysql":
            password_part = f":{self.mysql_password}" if self.mysql_password else ""
            return (
                f"mysql+pymysql://{self.mysql_user}{password_part}@{self.mysql_host}:"
                f"{self.mysql_port}/{self.mysql_database}?charset={self.mysql_charset}"
            )
        else:
            raise ValueError(f"Unsupported database backend: {self.backend}")

    def get_engine_options(self) -> dict[str, Any]:
        """Get SQLAlchemy engine options."""
        return {
            "echo": self.echo,
            "future": True,
            "pool_pre_ping": self.pool_pre_ping,
            "pool_recycle": self.pool_recycle,
        }


class LoggingConfig(BaseSettings):
    """
    Logging configuration settings.

    Example:
        >>> log_config = LoggingConfig(level="DEBUG", file_path="./logs/app.log")
        >>> print(log_config.get_file_handler_config())
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Minimum logging level"
    )
    file_path: str | None = Field(None, description="Log file path")
    max_bytes: int = Field(10 * 1024 * 1024, ge=1024, description="Max log file size in bytes")
    backup_count: int = Field(5, ge=1, description="Number of backup log files")
    structured: bool = Field(True, description="Use structured JSON logging")
    console_enabled: bool = Field(True, description="Enable console output")

    model_config = {"env_prefix": "LOG_", "case_sensitive": False}

    def get_file_handler_config(self) -> dict[str, Any] | None:
        """Get file handler configuration if file logging is enabled."""
        if not self.file_path:
            return None

        return {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": self.file_path,
            "maxBytes": self.max_bytes,
            "backupCount": self.backup_count,
            "encoding": "utf-8",
        }


class ScoringConfig(BaseSettings):
    """
    Catalog interpretation and scoring settings.

    `catalog_name_map` is the static table translating historical catalog names
    (as stored on old evaluations) to the names of the current catalogs. It can be
    replaced wholesale by pointing `name_map_path` at a JSON object file.
    """

    default_rating_max: int = Field(5, ge=1, description="rateMax used when a rating omits it")
    other_category_label: str = Field("Other", min_length=1)
    summary_page_names: list[str] = Field(
        default_factory=lambda: ["Bewertungsübersicht"],
        description="Pages that summarise results and are not real categories",
    )
    catalog_name_map: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_CATALOG_NAME_MAP)
    )
    name_map_path: str | None = Field(None, description="JSON file with the catalog name map")

    model_config = {"env_prefix": "SCORING_", "case_sensitive": False}

    @model_validator(mode="after")
    def load_name_map_file(self):
        """Replace the inline name map with the file contents when a file is configured."""
        if self.name_map_path:
            path = Path(self.name_map_path)
            if not path.exists():
                raise ValueError(f"Catalog name map file not found: {self.name_map_path}")
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("Catalog name map file must contain a JSON object")
            self.catalog_name_map = {str(k): str(v) for k, v in data.items()}
        return self


class ReportingConfig(BaseSettings):
    """Dashboard aggregation settings."""

    anonymized_domain: str = Field("verbaneum.de", min_length=3)
    histogram_bounds: list[float] = Field(
        default_factory=lambda: [50.0, 70.0, 80.0, 90.0, 100.0],
        description="Inclusive upper bounds of the score buckets",
    )
    action_field_fragments: list[str] = Field(
        default_factory=lambda: [
            "handlungsbedarf",
            "maßnahme",
            "massnahme",
            "action_required",
            "action required",
            "actionrequired",
        ]
    )
    truthy_values: list[str] = Field(
        default_factory=lambda: ["ja", "yes", "true", "1", "x", "y", "j"]
    )
    other_dimension_label: str = Field("Other", min_length=1)
    all_sentinel: str = Field("all", min_length=1)
    display_percent_cap: float = Field(100.0, gt=0)

    model_config = {"env_prefix": "REPORT_", "case_sensitive": False}

    @field_validator("histogram_bounds")
    def validate_bounds(cls, v):
        """Bounds must be strictly increasing and positive."""
        if not v:
            raise ValueError("At least one histogram bound is required")
        if any(b <= 0 for b in v):
            raise ValueError("Histogram bounds must be positive")
        if any(later <= earlier for earlier, later in zip(v, v[1:])):
            raise ValueError("Histogram bounds must be strictly increasing")
        return v

    @field_validator("action_field_fragments", "truthy_values")
    def lower_vocabulary(cls, v):
        return [item.strip().lower() for item in v if item and item.strip()]


class CacheConfig(BaseSettings):
    """Catalog index cache settings."""

    enabled: bool = Field(True, description="Cache the built schema index")
    catalog_ttl_seconds: int = Field(300, ge=0, description="Schema index TTL (seconds)")

    model_config = {"env_prefix": "CACHE_", "case_sensitive": False}


class ApplicationConfig(BaseSettings):
    """
    Main application configuration.

    Example:
        >>> config = get_settings()
        >>> print(config.app.environment)
    """

    environment: Literal["development", "testing", "production"] = Field(
        "development", description="Application environment"
    )
    debug: bool = Field(False, description="Enable debug mode")
    version: str = Field("0.1.0", description="Application version")
    title: str = Field("QApture", description="Application title")

    model_config = {"env_prefix": "APP_", "case_sensitive": False}

    @model_validator(mode="after")
    def debug_implies_development(self):
        """Ensure debug mode is only enabled in development."""
        if self.debug and self.environment == "production":
            raise ValueError("Debug mode cannot be enabled in production")
        return self


class Settings:
    """
    Complete application settings container with lazily loaded sections.

    Example:
        >>> settings = get_settings()
        >>> print(settings.database.get_connection_url())
        >>> print(settings.reporting.anonymized_domain)
    """

    def __init__(self):
        self._app: ApplicationConfig | None = None
        self._database: DatabaseConfig | None = None
        self._logging: LoggingConfig | None = None
        self._scoring: ScoringConfig | None = None
        self._reporting: ReportingConfig | None = None
        self._cache: CacheConfig | None = None

    @property
    def app(self) -> ApplicationConfig:
        if self._app is None:
            self._app = ApplicationConfig()
        return self._app

    @property
    def database(self) -> DatabaseConfig:
        if self._database is None:
            self._database = DatabaseConfig()
        return self._database

    @property
    def logging(self) -> LoggingConfig:
        if self._logging is None:
            # Set logging level based on environment
            level = "DEBUG" if self.app.debug else "INFO"
            if self.app.environment == "production":
                level = "WARNING"
            self._logging = LoggingConfig(level=level)
        return self._logging

    @property
    def scoring(self) -> ScoringConfig:
        if self._scoring is None:
            self._scoring = ScoringConfig()
        return self._scoring

    @property
    def reporting(self) -> ReportingConfig:
        if self._reporting is None:
            self._reporting = ReportingConfig()
        return self._reporting

    @property
    def cache(self) -> CacheConfig:
        if self._cache is None:
            self._cache = CacheConfig()
        return self._cache

    def is_development(self) -> bool:
        return self.app.environment == "development"

    def is_production(self) -> bool:
        return self.app.environment == "production"

    def is_testing(self) -> bool:
        return self.app.environment == "testing"

    def get_environment_info(self) -> dict[str, Any]:
        """Get summary of current environment configuration."""
        return {
            "environment": self.app.environment,
            "version": self.app.version,
            "debug": self.app.debug,
            "database_backend": self.database.backend,
            "logging_level": self.logging.level,
            "scoring": {
                "default_rating_max": self.scoring.default_rating_max,
                "mapped_catalog_names": len(self.scoring.catalog_name_map),
            },
            "cache": {
                "enabled": self.cache.enabled,
                "catalog_ttl_seconds": self.cache.catalog_ttl_seconds,
            },
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get application settings instance (cached).

    Example:
        >>> settings = get_settings()
        >>> db_url = settings.database.get_connection_url()
    """
    return Settings()


def load_settings_from_file(file_path: str) -> Settings:
    """
    Load settings from a JSON configuration file.

    The file holds one object per section, e.g. ``{"report": {"anonymized_domain": "x.de"}}``;
    each value is exported as ``<SECTION>_<KEY>`` so the section classes pick it up.

    Raises:
        FileNotFoundError: If configuration file doesn't exist
        ValueError: If file format is unsupported
    """
    config_path = Path(file_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    if config_path.suffix.lower() == ".json":
        with open(config_path, encoding="utf-8") as f:
            config_data = json.load(f)
    else:
        raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

    for section, values in config_data.items():
        if isinstance(values, dict):
            for key, value in values.items():
                env_key = f"{section.upper()}_{key.upper()}"
                if isinstance(value, (list, dict)):
                    os.environ[env_key] = json.dumps(value)
                else:
                    os.environ[env_key] = str(value)

    get_settings.cache_clear()
    return get_settings()


def override_settings(**kwargs) -> Settings:
    """
    Override specific settings for testing or development.

    Example:
        >>> settings = override_settings(app_environment="testing")
    """
    for key, value in kwargs.items():
        os.environ[key.upper()] = str(value)

    get_settings.cache_clear()
    return get_settings()


def reset_settings() -> None:
    """Reset settings cache to reload from environment."""
    get_settings.cache_clear()
