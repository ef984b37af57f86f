"""Configuration schema for pow.

Defines all configuration options with types, defaults, and validation.
Uses Pydantic for schema enforcement and clear error messages.
"""

from __future__ import annotations

import shlex
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InstallConfig(BaseModel):
    """Dependency reinstall settings."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(
        default=True,
        description="Run the package manager install when the lockfile changed",
    )
    yarn: str = Field(default="yarn --immutable", description="Install command for yarn")
    pnpm: str = Field(default="pnpm install --frozen-lockfile", description="Install command for pnpm")
    npm: str = Field(default="npm ci", description="Install command for npm")

    @field_validator("yarn", "pnpm", "npm")
    @classmethod
    def validate_command(cls, v: str) -> str:
        """Reject commands that split into nothing or have unbalanced quotes."""
        try:
            argv = shlex.split(v)
        except ValueError as e:
            raise ValueError(f"Invalid install command {v!r}: {e}") from e
        if not argv:
            raise ValueError("Install command must not be empty")
        return v

    def commands(self) -> Dict[str, str]:
        return {"yarn": self.yarn, "pnpm": self.pnpm, "npm": self.npm}


class CleanupConfig(BaseModel):
    """Stale branch cleanup settings."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(
        default=True,
        description="Delete local branches whose upstream was removed (main/master runs only)",
    )


class LoggingConfig(BaseModel):
    """Diagnostic log file settings."""

    model_config = ConfigDict(extra="forbid")

    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    dir: str = Field(default="", description="Log directory (empty = ~/.pow/logs)")
    max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024, description="Max log file size before rotation")
    backup_count: int = Field(default=5, ge=0, description="Number of rotated log files to keep")
    disable_file: bool = Field(default=False, description="Disable file logging")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class PowConfig(BaseModel):
    """Root configuration model."""

    model_config = ConfigDict(extra="forbid")

    install: InstallConfig = Field(default_factory=InstallConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
