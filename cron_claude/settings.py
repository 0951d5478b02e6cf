"""
Typed settings for cron-claude using pydantic-settings.

A single CronSettings object is built once per process and handed to the
audit logger, the registrar and the executor, so tests can point every
component at a temporary home directory without touching globals.

Usage:
    from cron_claude.settings import get_settings

    settings = get_settings()
    settings.ensure_directories()
    print(settings.logs_dir)
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CONFIG_SECTION = "cron_claude"
TASK_NAME_PREFIX = "CronClaude_"
DEFAULT_CLI_TIMEOUT_SECONDS = 300.0


def _default_home_dir() -> Path:
    """~/.cron-claude, or $XDG_CONFIG_HOME/cron_claude when that is set."""
    xdg_base = os.getenv("XDG_CONFIG_HOME")
    if xdg_base:
        return Path(xdg_base) / "cron_claude"
    return Path.home() / ".cron-claude"


class CronSettings(BaseSettings):
    """Process-wide configuration context."""

    model_config = SettingsConfigDict(
        env_prefix="CRON_CLAUDE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Paths
    home_dir: Path = Field(default_factory=_default_home_dir)
    tasks_dir: Optional[Path] = None
    logs_dir: Optional[Path] = None
    locks_dir: Optional[Path] = None

    # Native scheduler
    task_name_prefix: str = Field(default=TASK_NAME_PREFIX, min_length=1)

    # CLI invocation
    cli_command: str = Field(default="claude", description="CLI tool name or path")
    cli_timeout_seconds: float = Field(default=DEFAULT_CLI_TIMEOUT_SECONDS, gt=0)

    # API invocation
    api_url: str = "https://api.anthropic.com/v1/messages"
    api_model: str = "claude-sonnet-4-5-20250929"
    api_version: str = "2023-06-01"
    api_max_tokens: int = Field(default=4096, ge=1)
    api_timeout_seconds: float = Field(default=120.0, gt=0)
    anthropic_api_key: Optional[SecretStr] = Field(
        default=None, alias="ANTHROPIC_API_KEY"
    )

    @model_validator(mode="after")
    def _derive_directories(self) -> "CronSettings":
        home = self.home_dir.expanduser()
        self.home_dir = home
        if self.tasks_dir is None:
            self.tasks_dir = home / "tasks"
        if self.logs_dir is None:
            self.logs_dir = home / "logs"
        if self.locks_dir is None:
            self.locks_dir = home / "locks"
        return self

    @property
    def config_file(self) -> Path:
        return self.home_dir / "cron_claude.cfg"

    def get_api_key(self) -> Optional[str]:
        """Raw API key, or None when it is unset or blank."""
        if self.anthropic_api_key is None:
            return None
        value = self.anthropic_api_key.get_secret_value().strip()
        return value or None

    def ensure_directories(self) -> None:
        """Create the home, tasks, logs and locks directories (mode 0700)."""
        for directory in (self.home_dir, self.tasks_dir, self.logs_dir, self.locks_dir):
            directory.mkdir(parents=True, exist_ok=True, mode=0o700)


@lru_cache(maxsize=1)
def get_settings() -> CronSettings:
    return CronSettings()


def clear_settings_cache() -> None:
    """Forget the cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()
