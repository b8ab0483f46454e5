"""Configuration models for todosync."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from todosync.models import MAX_TEXT_LENGTH
from todosync.persistence import DEFAULT_QUOTA_BYTES, DEFAULT_STORAGE_KEY


class StorageConfig(BaseModel):
    """Where snapshots are kept."""

    directory: str = ".todosync/data"
    key: str = DEFAULT_STORAGE_KEY
    quota_bytes: int = DEFAULT_QUOTA_BYTES


class AutoSaveConfig(BaseModel):
    """Configuration for debounced saving."""

    debounce_ms: int = 300
    deep: bool = True


class TasksConfig(BaseModel):
    """Configuration for task handling."""

    max_text_length: int = MAX_TEXT_LENGTH
    submit_latency_ms: int = 300
    seed_sample_data: bool = True


class SyncConfig(BaseModel):
    """Configuration for cross-process sync."""

    enabled: bool = True


class ThemeConfig(BaseModel):
    """System signals consumed by the theme state."""

    system_prefers_dark: bool = False
    reduced_motion: bool = False


class LoggingConfig(BaseModel):
    """Configuration for log output."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    file: str | None = None


class AppConfig(BaseModel):
    """Main configuration for todosync."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    autosave: AutoSaveConfig = Field(default_factory=AutoSaveConfig)
    tasks: TasksConfig = Field(default_factory=TasksConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    theme: ThemeConfig = Field(default_factory=ThemeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> AppConfig:
        """Load configuration from file or return defaults."""
        if path is None:
            path = CONFIG_FILE

        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        return cls.model_validate(data)

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = CONFIG_FILE

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(self.model_dump(exclude_none=True), f, indent=2)


# Default config directory
TODOSYNC_DIR = Path(".todosync")
CONFIG_FILE = TODOSYNC_DIR / "config.json"
