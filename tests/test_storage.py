"""Tests for todosync.storage module."""

from __future__ import annotations

from pathlib import Path

import pytest

from todosync.errors import StorageError
from todosync.storage import FileStorage, MemoryStorage


class TestMemoryStorage:
    """Tests for MemoryStorage."""

    def test_set_get_remove(self, memory_storage: MemoryStorage) -> None:
        """Test basic item operations."""
        assert memory_storage.get_item("k") is None
        memory_storage.set_item("k", "v")
        assert memory_storage.get_item("k") == "v"
        memory_storage.remove_item("k")
        assert memory_storage.get_item("k") is None

    def test_remove_missing(self, memory_storage: MemoryStorage) -> None:
        """Test removing a missing key is not an error."""
        memory_storage.remove_item("missing")

    def test_watch_is_noop(self, memory_storage: MemoryStorage) -> None:
        """Test watching returns a callable unsubscribe."""
        unsubscribe = memory_storage.watch(lambda event: None)
        unsubscribe()


class TestFileStorage:
    """Tests for FileStorage."""

    def test_set_creates_directory(self, file_storage: FileStorage) -> None:
        """Test the first write creates the directory and the key file."""
        file_storage.set_item("todo-app-data", '{"tasks":[]}')

        path = file_storage.path_for("todo-app-data")
        assert path == file_storage.directory / "todo-app-data.json"
        assert path.read_text() == '{"tasks":[]}'

    def test_get_missing(self, file_storage: FileStorage) -> None:
        """Test missing keys read as None."""
        assert file_storage.get_item("nothing") is None

    def test_round_trip_unicode(self, file_storage: FileStorage) -> None:
        """Test non-ASCII text survives."""
        file_storage.set_item("k", "café ✓")
        assert file_storage.get_item("k") == "café ✓"

    def test_no_temp_files_left(self, file_storage: FileStorage) -> None:
        """Test atomic writes clean up after themselves."""
        file_storage.set_item("k", "one")
        file_storage.set_item("k", "two")
        assert [p.name for p in file_storage.directory.iterdir()] == ["k.json"]

    def test_remove(self, file_storage: FileStorage) -> None:
        """Test remove deletes the file and tolerates missing keys."""
        file_storage.set_item("k", "v")
        file_storage.remove_item("k")
        assert file_storage.get_item("k") is None
        file_storage.remove_item("k")

    def test_is_own_write(self, file_storage: FileStorage) -> None:
        """Test own-write tracking follows the latest value."""
        file_storage.set_item("k", "one")
        assert file_storage.is_own_write("k", "one") is True
        file_storage.set_item("k", "two")
        assert file_storage.is_own_write("k", "one") is False
        assert file_storage.is_own_write("k", "two") is True
        file_storage.remove_item("k")
        assert file_storage.is_own_write("k", "two") is False

    def test_write_failure_raises(self, tmp_path: Path) -> None:
        """Test an unusable directory raises StorageError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        storage = FileStorage(blocker / "data")

        with pytest.raises(StorageError):
            storage.set_item("k", "v")

    def test_read_failure_raises(self, file_storage: FileStorage) -> None:
        """Test a key path that is a directory raises StorageError."""
        file_storage.path_for("k").mkdir(parents=True)
        with pytest.raises(StorageError):
            file_storage.get_item("k")
