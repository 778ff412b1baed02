"""Configuration schema for gitnormalize.

Defines all configuration options with types, defaults, and validation.
Uses Pydantic for schema enforcement and clear error messages.
"""

from __future__ import annotations

import warnings
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FetchConfig(BaseModel):
    """Fetch behavior settings."""

    enabled: bool = Field(
        default=True,
        description="Fetch from remotes before normalizing (--no-fetch disables)",
    )
    tags: bool = Field(
        default=True,
        description="Fetch all tags along with branches",
    )
    pull_requests: bool = Field(
        default=True,
        description="Fetch refs/pull/*/merge into the remote-tracking namespace",
    )
    unshallow: bool = Field(
        default=True,
        description="Convert shallow clones to full clones while fetching",
    )
    timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds before a fetch is killed (empty = no timeout)",
    )


class CheckoutConfig(BaseModel):
    """Settings for the final checkout state."""

    attach_detached_head: bool = Field(
        default=False,
        description="Attach a detached HEAD to a local branch at the same commit",
    )
    ignore_head_move: bool = Field(
        default=False,
        description="Do not fail when HEAD ends on an unexpected commit",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )
    dir: str = Field(
        default="",
        description="Log directory (empty = ~/.gitnormalize/logs)",
    )
    max_bytes: int = Field(
        default=10485760,  # 10MB
        ge=0,
        description="Maximum log file size in bytes",
    )
    backup_count: int = Field(
        default=5,
        ge=0,
        description="Number of backup log files to keep",
    )
    disable_file: bool = Field(
        default=False,
        description="Disable file logging (stderr only)",
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: object) -> object:
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("dir")
    @classmethod
    def validate_log_dir(cls, v: str) -> str:
        """Warn if log directory path is not a directory (it is created on use)."""
        if v:
            path = Path(v).expanduser()
            if path.exists() and not path.is_dir():
                warnings.warn(
                    f"Log path exists but is not a directory: {v}",
                    UserWarning,
                )
        return v


class NormalizeConfig(BaseModel):
    """Root configuration model."""

    model_config = ConfigDict(extra="ignore")

    version: int = Field(
        default=1,
        description="Config schema version",
    )
    remote: str = Field(
        default="",
        description="Remote whose branches win on name collisions (empty = origin)",
    )
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    checkout: CheckoutConfig = Field(default_factory=CheckoutConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def default(cls) -> "NormalizeConfig":
        """Create config with all defaults."""
        return cls()
