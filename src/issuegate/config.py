"""Configuration management for issuegate."""

import os
import tomllib
from pathlib import Path
from typing import Self

import tomli_w
from pydantic import BaseModel, Field, model_validator

from .constants import (
    CONFIG_FILENAME,
    DEFAULT_HOME_DIRNAME,
    HISTORY_LOCK_TIMEOUT,
    HOME_ENV_VAR,
    INCOMPLETE_GRACE,
    LEDGER_FILENAME,
    LOCK_TIMEOUT,
    LOCKS_DIRNAME,
    MAX_CONCURRENT,
    MAX_RETRIES,
    MAX_WRITE_ATTEMPTS,
    POLL_INTERVAL,
    STALE_LOCK_AGE,
    SWEEP_LIMIT,
)


class ExecutionConfig(BaseModel):
    """Retry budget and capacity for trigger processing."""

    max_retries: int = Field(
        default=MAX_RETRIES, ge=0, description="Retries allowed after the first failed attempt"
    )
    max_concurrent: int = Field(
        default=MAX_CONCURRENT, ge=1, description="Maximum simultaneously active jobs"
    )


class LocksConfig(BaseModel):
    """Lock timing settings (all durations in seconds)."""

    lock_timeout: float = Field(default=LOCK_TIMEOUT, ge=0, description="Per-trigger lock wait")
    stale_lock_age: float = Field(default=STALE_LOCK_AGE, gt=0, description="Lock expiry age")
    history_lock_timeout: float = Field(
        default=HISTORY_LOCK_TIMEOUT, ge=0, description="Ledger writer lock wait"
    )
    incomplete_grace: float = Field(
        default=INCOMPLETE_GRACE, ge=0, description="Grace period for incomplete lock metadata"
    )
    poll_interval: float = Field(default=POLL_INTERVAL, gt=0, description="Acquire poll interval")
    sweep_limit: int = Field(
        default=SWEEP_LIMIT, ge=0, description="Locks inspected per opportunistic sweep"
    )

    @model_validator(mode="after")
    def validate_grace_below_expiry(self) -> Self:
        """Ensure incomplete locks get reclaimed before live ones expire."""
        if self.incomplete_grace >= self.stale_lock_age:
            raise ValueError(
                f"incomplete_grace ({self.incomplete_grace}) must be smaller than "
                f"stale_lock_age ({self.stale_lock_age})"
            )
        return self


class LedgerConfig(BaseModel):
    """Execution ledger settings."""

    max_write_attempts: int = Field(
        default=MAX_WRITE_ATTEMPTS, ge=1, description="Write attempts before failing"
    )


class IssuegateConfig(BaseModel):
    """Root configuration for issuegate."""

    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    locks: LocksConfig = Field(default_factory=LocksConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)


def get_home_dir(home: Path | None = None) -> Path:
    """Get the issuegate home directory.

    Args:
        home: Explicit home, takes precedence over the environment

    Returns:
        ``home``, else $ISSUEGATE_HOME, else ./.issuegate
    """
    if home is not None:
        return home
    env_home = os.environ.get(HOME_ENV_VAR)
    if env_home:
        return Path(env_home)
    return Path.cwd() / DEFAULT_HOME_DIRNAME


def get_locks_dir(home: Path) -> Path:
    """Get directory holding lock containers."""
    return home / LOCKS_DIRNAME


def get_ledger_path(home: Path) -> Path:
    """Get path to the execution ledger document."""
    return home / LEDGER_FILENAME


def load_config(home: Path) -> IssuegateConfig:
    """Load config from <home>/config.toml.

    Args:
        home: Path to issuegate home directory

    Returns:
        Loaded configuration, or defaults if config.toml doesn't exist
    """
    config_path = home / CONFIG_FILENAME
    if not config_path.exists():
        return IssuegateConfig()
    with open(config_path, "rb") as f:
        data = tomllib.load(f)
    return IssuegateConfig.model_validate(data)


def write_config_template(home: Path) -> Path:
    """Write default config.toml template.

    Args:
        home: Path to issuegate home directory

    Returns:
        Path to the written config file
    """
    config_path = home / CONFIG_FILENAME
    template = IssuegateConfig().model_dump()
    with open(config_path, "wb") as f:
        tomli_w.dump(template, f)
    return config_path
