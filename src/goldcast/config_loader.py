"""Configuration loader with Pydantic validation and environment variable interpolation."""

from __future__ import annotations

import os
import re
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# Load environment variables at module level
load_dotenv(find_dotenv(usecwd=True))

from goldcast.constants import (
    CHAT_SUFFIXES,
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_GROWTH,
    DEFAULT_BACKOFF_MAX,
    DEFAULT_BATCH_DELAY,
    DEFAULT_BATCH_SIZE,
    DEFAULT_COOLDOWN_SECONDS,
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_DEDUP_CAPACITY,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_GLOBAL_FLOOR_SECONDS,
    DEFAULT_HISTORY_SIZE,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MIN_BROADCAST_INTERVAL,
    DEFAULT_MIN_CHANGE,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SEND_TIMEOUT,
    DEFAULT_TREASURY_URL,
    DEFAULT_WARMUP_SECONDS,
    LOGGED_OUT_REASON,
    LogLevel,
    SourceKind,
)


def interpolate_env_vars(value: Any) -> Any:
    """
    Interpolate environment variables in string values.

    Supports formats:
    - ${VAR_NAME} - replaced by the variable, empty string if unset
    - ${VAR_NAME:default} - optional with default value
    """
    if not isinstance(value, str):
        return value

    pattern = r"\$\{([^}:]+)(?::([^}]*))?\}"

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)

        env_value = os.environ.get(var_name)

        if env_value is not None:
            return env_value
        elif default is not None:
            return default
        else:
            return ""

    return re.sub(pattern, replacer, value)


def process_config_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively process config dict to interpolate env vars."""
    result = {}
    for key, value in data.items():
        if isinstance(value, dict):
            result[key] = process_config_dict(value)
        elif isinstance(value, list):
            result[key] = [
                process_config_dict(item) if isinstance(item, dict) else interpolate_env_vars(item)
                for item in value
            ]
        else:
            result[key] = interpolate_env_vars(value)
    return result


def _require_positive(v: float) -> float:
    if v <= 0:
        raise ValueError(f"Value must be positive, got: {v}")
    return v


def _require_non_negative(v: float) -> float:
    if v < 0:
        raise ValueError(f"Value must be non-negative, got: {v}")
    return v


# ============================================
# Pydantic Configuration Models
# ============================================


class EnvironmentConfig(BaseModel):
    """Environment and runtime settings."""

    dry_run: bool = False
    log_level: LogLevel = LogLevel.INFO


class SourceConfig(BaseModel):
    """Price source configuration."""

    kind: SourceKind = SourceKind.TREASURY
    url: str = DEFAULT_TREASURY_URL
    timeout_seconds: float = DEFAULT_FETCH_TIMEOUT
    retry_attempts: int = 2
    warmup: bool = True

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        return _require_positive(v)

    @field_validator("retry_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        """At least one attempt per poll tick."""
        if v < 1:
            raise ValueError(f"retry_attempts must be at least 1, got: {v}")
        return v


class TransportConfig(BaseModel):
    """Session transport configuration."""

    kind: str = "sim"  # "sim" or "package.module:ClassName"
    session_dir: str = "./session"
    logged_out_reason: str = LOGGED_OUT_REASON


class MonitorConfig(BaseModel):
    """Polling, change detection and debounce settings."""

    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL
    min_change: Decimal = Decimal(DEFAULT_MIN_CHANGE)
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    min_broadcast_interval_seconds: float = DEFAULT_MIN_BROADCAST_INTERVAL

    @field_validator("min_change", mode="before")
    @classmethod
    def convert_to_decimal(cls, v: Any) -> Decimal:
        """Convert numeric values to Decimal."""
        if isinstance(v, Decimal):
            return v
        return Decimal(str(v))

    @field_validator("min_change")
    @classmethod
    def validate_min_change(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError(f"min_change must be non-negative, got: {v}")
        return v

    @field_validator("poll_interval_seconds", "debounce_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        return _require_positive(v)

    @field_validator("min_broadcast_interval_seconds")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        return _require_non_negative(v)


class DispatchConfig(BaseModel):
    """Broadcast fan-out settings."""

    batch_size: int = DEFAULT_BATCH_SIZE
    batch_delay_seconds: float = DEFAULT_BATCH_DELAY
    send_timeout_seconds: float = DEFAULT_SEND_TIMEOUT
    history_size: int = DEFAULT_HISTORY_SIZE
    apply_cooldown_to_broadcast: bool = False

    @field_validator("batch_size", "history_size")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be at least 1, got: {v}")
        return v

    @field_validator("batch_delay_seconds")
    @classmethod
    def validate_delay(cls, v: float) -> float:
        return _require_non_negative(v)

    @field_validator("send_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        return _require_positive(v)


class RateLimitConfig(BaseModel):
    """Per-recipient cooldown and global throttle."""

    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS
    global_floor_seconds: float = DEFAULT_GLOBAL_FLOOR_SECONDS

    @field_validator("cooldown_seconds", "global_floor_seconds")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        return _require_non_negative(v)

    @model_validator(mode="after")
    def validate_floor_below_cooldown(self) -> RateLimitConfig:
        """The global floor is meant to be much shorter than the cooldown."""
        if self.cooldown_seconds and self.global_floor_seconds > self.cooldown_seconds:
            raise ValueError(
                f"global_floor_seconds ({self.global_floor_seconds}) must not exceed "
                f"cooldown_seconds ({self.cooldown_seconds})"
            )
        return self


class ConnectionConfig(BaseModel):
    """Connection lifecycle: warm-up and reconnect backoff."""

    warmup_seconds: float = DEFAULT_WARMUP_SECONDS
    backoff_base_seconds: float = DEFAULT_BACKOFF_BASE
    backoff_growth: float = DEFAULT_BACKOFF_GROWTH
    backoff_max_seconds: float = DEFAULT_BACKOFF_MAX
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    keepalive_interval_seconds: float = 0.0  # 0 disables pings

    @field_validator("warmup_seconds", "keepalive_interval_seconds")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        return _require_non_negative(v)

    @field_validator("backoff_base_seconds", "backoff_max_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        return _require_positive(v)

    @field_validator("backoff_growth")
    @classmethod
    def validate_growth(cls, v: float) -> float:
        """Growth below 1 would make the backoff shrink."""
        if v < 1:
            raise ValueError(f"backoff_growth must be >= 1, got: {v}")
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"max_attempts must be non-negative, got: {v}")
        return v


class CommandsConfig(BaseModel):
    """Inbound command keywords."""

    subscribe: list[str] = Field(default_factory=lambda: ["subscribe", "langganan"])
    unsubscribe: list[str] = Field(default_factory=lambda: ["unsubscribe", "berhenti"])
    query: list[str] = Field(default_factory=lambda: ["emas", "gold"])
    help: list[str] = Field(default_factory=lambda: ["help", "start"])
    chat_suffixes: list[str] = Field(default_factory=lambda: list(CHAT_SUFFIXES))

    @field_validator("subscribe", "unsubscribe", "query", "help")
    @classmethod
    def validate_keywords(cls, v: list[str]) -> list[str]:
        """Normalize keywords to bare lowercase words."""
        keywords = [k.strip().lower().lstrip("/") for k in v if k.strip()]
        if not keywords:
            raise ValueError("Keyword list must not be empty")
        return keywords


class DedupConfig(BaseModel):
    """Inbound message dedup guard."""

    capacity: int = DEFAULT_DEDUP_CAPACITY

    @field_validator("capacity")
    @classmethod
    def validate_capacity(cls, v: int) -> int:
        if v < 2:
            raise ValueError(f"capacity must be at least 2, got: {v}")
        return v


class AppConfig(BaseModel):
    """Root application configuration."""

    environment: EnvironmentConfig = Field(default_factory=EnvironmentConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    commands: CommandsConfig = Field(default_factory=CommandsConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    subscribers: list[str] = Field(default_factory=list)

    @property
    def is_dry_run(self) -> bool:
        """Check if running in dry run mode."""
        return self.environment.dry_run

    @property
    def is_sim_source(self) -> bool:
        """Check if prices come from the random-walk simulator."""
        return self.source.kind == SourceKind.SIM


# ============================================
# Configuration Loader
# ============================================


class ConfigLoader:
    """Load and validate configuration from YAML files with env var interpolation."""

    def __init__(self, config_path: str | Path) -> None:
        """
        Initialize config loader.

        Args:
            config_path: Path to the YAML configuration file.
        """
        self.config_path = Path(config_path)
        self._config: AppConfig | None = None

    def load(self) -> AppConfig:
        """
        Load and validate configuration.

        Returns:
            Validated AppConfig instance.

        Raises:
            FileNotFoundError: If config file doesn't exist.
            yaml.YAMLError: If YAML is invalid.
            pydantic.ValidationError: If config validation fails.
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)

        if raw_config is None:
            raw_config = {}

        processed_config = process_config_dict(raw_config)

        self._config = AppConfig.model_validate(processed_config)

        return self._config

    @property
    def config(self) -> AppConfig:
        """Get loaded config, loading if necessary."""
        if self._config is None:
            return self.load()
        return self._config

    def reload(self) -> AppConfig:
        """Force reload configuration from disk."""
        self._config = None
        return self.load()


def load_config(config_path: str | Path) -> AppConfig:
    """Convenience function to load configuration."""
    loader = ConfigLoader(config_path)
    return loader.load()


def load_config_with_overrides(
    config_path: str | Path,
    *,
    dry_run: bool | None = None,
    source: str | None = None,
    log_level: str | None = None,
) -> AppConfig:
    """
    Load configuration with CLI overrides.

    Args:
        config_path: Path to the YAML configuration file.
        dry_run: Override dry_run setting.
        source: Override the price source kind.
        log_level: Override the log level.

    Returns:
        Validated AppConfig instance with overrides applied.
    """
    config = load_config(config_path)

    updates: dict[str, Any] = {}
    env_updates: dict[str, Any] = {}

    if dry_run is not None:
        env_updates["dry_run"] = dry_run

    if log_level is not None:
        env_updates["log_level"] = LogLevel(log_level.upper())

    if env_updates:
        updates["environment"] = config.environment.model_copy(update=env_updates)

    if source is not None:
        updates["source"] = config.source.model_copy(update={"kind": SourceKind(source.lower())})

    if updates:
        return config.model_copy(update=updates)

    return config
