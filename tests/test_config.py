"""Tests for todosync.config module."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from todosync.config import (
    CONFIG_FILE,
    TODOSYNC_DIR,
    AppConfig,
    AutoSaveConfig,
    LoggingConfig,
    StorageConfig,
    TasksConfig,
)


class TestSectionDefaults:
    """Tests for the default values of each section."""

    def test_storage(self) -> None:
        """Test storage defaults."""
        config = StorageConfig()
        assert config.directory == ".todosync/data"
        assert config.key == "todo-app-data"
        assert config.quota_bytes == 5 * 1024 * 1024

    def test_autosave(self) -> None:
        """Test auto-save defaults."""
        config = AutoSaveConfig()
        assert config.debounce_ms == 300
        assert config.deep is True

    def test_tasks(self) -> None:
        """Test task defaults."""
        config = TasksConfig()
        assert config.max_text_length == 200
        assert config.submit_latency_ms == 300
        assert config.seed_sample_data is True

    def test_logging(self) -> None:
        """Test logging defaults."""
        config = LoggingConfig()
        assert config.level == "WARNING"
        assert config.file is None

    def test_invalid_log_level(self) -> None:
        """Test that unknown log levels are rejected."""
        with pytest.raises(ValidationError):
            LoggingConfig(level="LOUD")  # type: ignore[arg-type]


class TestAppConfig:
    """Tests for AppConfig model."""

    def test_defaults(self) -> None:
        """Test default values."""
        config = AppConfig()
        assert config.sync.enabled is True
        assert config.theme.system_prefers_dark is False
        assert config.theme.reduced_motion is False

    def test_partial_sections(self) -> None:
        """Test unspecified fields keep their defaults."""
        config = AppConfig.model_validate({"autosave": {"debounce_ms": 50}})
        assert config.autosave.debounce_ms == 50
        assert config.autosave.deep is True
        assert config.storage.key == "todo-app-data"

    def test_load_nonexistent_returns_defaults(self, temp_project: Path) -> None:
        """Test loading from nonexistent file returns defaults."""
        config = AppConfig.load(temp_project / "nonexistent.json")
        assert config == AppConfig()

    def test_load_default_path(self, temp_todosync_dir: Path) -> None:
        """Test loading from the default config location."""
        (temp_todosync_dir / "config.json").write_text(json.dumps({"sync": {"enabled": False}}))
        config = AppConfig.load()
        assert config.sync.enabled is False

    def test_save_and_load(self, temp_project: Path) -> None:
        """Test a saved config loads back unchanged."""
        config = AppConfig.model_validate(
            {
                "storage": {"directory": "shared", "key": "work"},
                "tasks": {"max_text_length": 80},
                "logging": {"level": "DEBUG", "file": "todosync.log"},
            }
        )
        path = temp_project / "nested" / "config.json"
        config.save(path)

        assert path.exists()
        assert AppConfig.load(path) == config

    def test_save_omits_unset_log_file(self, temp_project: Path) -> None:
        """Test None values are not written."""
        path = temp_project / "config.json"
        AppConfig().save(path)
        data = json.loads(path.read_text())
        assert "file" not in data["logging"]

    def test_load_invalid_raises(self, temp_project: Path) -> None:
        """Test invalid values are reported."""
        path = temp_project / "config.json"
        path.write_text(json.dumps({"autosave": {"debounce_ms": "soon"}}))
        with pytest.raises(ValidationError):
            AppConfig.load(path)


class TestConstants:
    """Tests for module constants."""

    def test_paths(self) -> None:
        """Test default config paths."""
        assert TODOSYNC_DIR == Path(".todosync")
        assert CONFIG_FILE == Path(".todosync/config.json")
