# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Core configuration - centralized config for the rumormill package.

All environment-based configuration should flow through this module.

Usage:
    from rumormill.core.config import get_config
    config = get_config()

    threshold = config.verified_threshold
"""

from __future__ import annotations

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

STORAGE_BACKENDS = ("memory", "postgres")


class CoreSettings(BaseSettings):
    """Core configuration settings for RumorMill.

    Settings are read from ``RUMORMILL_*`` environment variables (or a
    ``.env`` file). Field names are also accepted as keyword arguments,
    which keeps test setup short.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ==========================================================================
    # STORAGE SETTINGS
    # ==========================================================================

    storage_backend: str = Field(
        default="memory",
        description="Record store: 'memory' or 'postgres'",
        validation_alias="RUMORMILL_STORAGE_BACKEND",
    )
    db_host: str = Field(
        default="localhost",
        description="Database host",
        validation_alias="RUMORMILL_DB_HOST",
    )
    db_port: int = Field(
        default=5432,
        description="Database port",
        validation_alias="RUMORMILL_DB_PORT",
    )
    db_name: str = Field(
        default="rumormill",
        description="Database name",
        validation_alias="RUMORMILL_DB_NAME",
    )
    db_user: str = Field(
        default="rumormill",
        description="Database user",
        validation_alias="RUMORMILL_DB_USER",
    )
    db_password: str = Field(
        default="",
        description="Database password",
        validation_alias="RUMORMILL_DB_PASSWORD",
    )
    db_pool_min: int = Field(
        default=1,
        description="Minimum pool connections",
        validation_alias="RUMORMILL_DB_POOL_MIN",
    )
    db_pool_max: int = Field(
        default=10,
        description="Maximum pool connections",
        validation_alias="RUMORMILL_DB_POOL_MAX",
    )
    db_pool_timeout: int = Field(
        default=30,
        description="Seconds to wait for a pooled connection",
        validation_alias="RUMORMILL_DB_POOL_TIMEOUT",
    )

    # ==========================================================================
    # IDENTITY SETTINGS
    # ==========================================================================

    identity_salt: str = Field(
        default="rumormill-development-salt",
        description="Server secret mixed into identity and vote tokens",
        validation_alias="RUMORMILL_IDENTITY_SALT",
    )

    # ==========================================================================
    # LIFECYCLE SETTINGS
    # ==========================================================================

    verified_threshold: float = Field(
        default=0.75,
        ge=0.0,
        le=1.0,
        description="Truth score at or above which a claim locks as verified",
        validation_alias="RUMORMILL_VERIFIED_THRESHOLD",
    )
    disputed_threshold: float = Field(
        default=0.25,
        ge=0.0,
        le=1.0,
        description="Truth score at or below which a claim locks as disputed",
        validation_alias="RUMORMILL_DISPUTED_THRESHOLD",
    )
    min_votes_for_lock: int = Field(
        default=5,
        ge=1,
        description="Votes required before a claim can lock",
        validation_alias="RUMORMILL_MIN_VOTES_FOR_LOCK",
    )
    min_credibility_weight: float = Field(
        default=2.0,
        ge=0.0,
        description="Total credibility weight required before a claim can lock",
        validation_alias="RUMORMILL_MIN_CREDIBILITY_WEIGHT",
    )

    # ==========================================================================
    # CREDIBILITY SETTINGS
    # ==========================================================================

    credibility_alpha: float = Field(
        default=0.05,
        gt=0.0,
        le=1.0,
        description="Credibility step applied per finalized vote",
        validation_alias="RUMORMILL_CREDIBILITY_ALPHA",
    )
    initial_credibility: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Credibility assigned to a newly observed identity",
        validation_alias="RUMORMILL_INITIAL_CREDIBILITY",
    )

    # ==========================================================================
    # ABUSE GUARD SETTINGS
    # ==========================================================================

    max_votes_per_hour: int = Field(
        default=10,
        ge=1,
        description="Votes allowed per identity per rolling hour",
        validation_alias="RUMORMILL_MAX_VOTES_PER_HOUR",
    )
    max_votes_per_day: int = Field(
        default=50,
        ge=1,
        description="Votes allowed per identity per rolling day",
        validation_alias="RUMORMILL_MAX_VOTES_PER_DAY",
    )
    min_vote_interval_ms: int = Field(
        default=2000,
        ge=0,
        description="Minimum milliseconds between two votes of one identity",
        validation_alias="RUMORMILL_MIN_VOTE_INTERVAL_MS",
    )
    low_credibility_threshold: float = Field(
        default=0.2,
        gt=0.0,
        le=1.0,
        description="Credibility below which vote weight is dampened",
        validation_alias="RUMORMILL_LOW_CREDIBILITY_THRESHOLD",
    )
    suspicious_risk_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Risk score at which an identity is flagged as suspicious",
        validation_alias="RUMORMILL_SUSPICIOUS_RISK_THRESHOLD",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="RUMORMILL_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="RUMORMILL_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="RUMORMILL_LOG_FILE",
    )

    @field_validator("storage_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in STORAGE_BACKENDS:
            raise ValueError(f"storage_backend must be one of {', '.join(STORAGE_BACKENDS)}")
        return value

    @model_validator(mode="after")
    def _check_thresholds(self) -> CoreSettings:
        if self.disputed_threshold >= self.verified_threshold:
            raise ValueError("disputed_threshold must be below verified_threshold")
        if self.max_votes_per_day < self.max_votes_per_hour:
            raise ValueError("max_votes_per_day must not be below max_votes_per_hour")
        return self

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def database_url(self) -> str:
        """Construct database URL."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def connection_params(self) -> dict:
        """Get database connection parameters dict."""
        return {
            "host": self.db_host,
            "port": self.db_port,
            "dbname": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
        }

    @property
    def pool_config(self) -> dict:
        """Get connection pool configuration."""
        return {
            "minconn": self.db_pool_min,
            "maxconn": self.db_pool_max,
        }


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: CoreSettings | None = None


def get_config() -> CoreSettings:
    """Get the global configuration instance.

    Returns:
        The singleton CoreSettings instance.
    """
    global _config
    if _config is None:
        _config = CoreSettings()
    return _config


def set_config(config: CoreSettings) -> None:
    """Install a configuration instance (used by the CLI and tests)."""
    global _config
    _config = config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
