"""Shared fixtures for todosync tests."""

from __future__ import annotations

import json
import os
from collections.abc import Generator
from pathlib import Path

import pytest

from todosync.config import AppConfig
from todosync.storage import FileStorage, MemoryStorage
from todosync.store import TaskStore


@pytest.fixture
def temp_project(tmp_path: Path) -> Generator[Path, None, None]:
    """Create a temporary project directory and change to it."""
    original_dir = os.getcwd()
    os.chdir(tmp_path)
    try:
        yield tmp_path
    finally:
        os.chdir(original_dir)


@pytest.fixture
def temp_todosync_dir(temp_project: Path) -> Path:
    """Create a temporary .todosync directory."""
    todosync_dir = temp_project / ".todosync"
    todosync_dir.mkdir()
    return todosync_dir


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def file_storage(tmp_path: Path) -> FileStorage:
    return FileStorage(tmp_path / "data")


@pytest.fixture
def store() -> TaskStore:
    """A task store without the simulated submit latency."""
    return TaskStore(submit_latency=0)


@pytest.fixture
def fast_config() -> AppConfig:
    """Config with no submit latency, a short debounce and sync disabled."""
    return AppConfig.model_validate(
        {
            "autosave": {"debounce_ms": 20},
            "tasks": {"submit_latency_ms": 0},
            "sync": {"enabled": False},
        }
    )


@pytest.fixture
def sample_snapshot_data() -> dict:
    """Sample persisted snapshot."""
    return {
        "tasks": [
            {
                "id": 1,
                "text": "Write report",
                "completed": False,
                "createdAt": "2025-01-10T10:00:00.000Z",
                "updatedAt": "2025-01-10T10:00:00.000Z",
            },
            {
                "id": 2,
                "text": "Buy milk",
                "completed": True,
                "createdAt": "2025-01-10T11:00:00.000Z",
                "updatedAt": "2025-01-10T12:30:00.000Z",
            },
            {
                "id": 4,
                "text": "Call the bank",
                "completed": False,
                "createdAt": "2025-01-11T09:00:00.000Z",
                "updatedAt": "2025-01-11T09:00:00.000Z",
            },
        ],
        "nextTaskId": 5,
        "filters": {
            "currentFilter": "pending",
            "searchQuery": "",
            "sortBy": "text",
            "sortOrder": "desc",
        },
        "theme": {"isDarkMode": True, "hasManualPreference": True},
        "version": "1.0",
    }


@pytest.fixture
def seeded_storage(memory_storage: MemoryStorage, sample_snapshot_data: dict) -> MemoryStorage:
    """Memory storage already holding the sample snapshot."""
    memory_storage.set_item("todo-app-data", json.dumps(sample_snapshot_data))
    return memory_storage
