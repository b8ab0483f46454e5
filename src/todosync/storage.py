"""Durable key-value stores used for persistence.

FileStorage keeps one JSON file per key in a directory that several processes
may share. MemoryStorage is the fallback when no directory is usable.
"""

from __future__ import annotations

import contextlib
import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from todosync.errors import StorageError


@dataclass(frozen=True, slots=True)
class StorageEvent:
    """A value under ``key`` was changed by another process.

    ``new_value`` is None when the key was removed.
    """

    key: str
    new_value: str | None


StorageListener = Callable[[StorageEvent], None]


class Storage(Protocol):
    """Minimal key-value interface the persistence layer relies on."""

    def get_item(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""

    def set_item(self, key: str, value: str) -> None:
        """Store a value. Raises StorageError on failure."""

    def remove_item(self, key: str) -> None:
        """Delete a key. Missing keys are not an error."""

    def watch(self, listener: StorageListener) -> Callable[[], None]:
        """Deliver changes made by other processes. Returns an unsubscribe function."""


class MemoryStorage:
    """In-process storage. Nothing survives the process."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def watch(self, listener: StorageListener) -> Callable[[], None]:
        # No other process can write here, so there is nothing to deliver.
        return lambda: None


class FileStorage:
    """Stores each key as ``<directory>/<key>.json``.

    Writes go to a temporary sibling that is then renamed over the target, so
    a reader in another process sees either the old or the new content.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._written: dict[str, str] = {}

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get_item(self, key: str) -> str | None:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        path = self.path_for(key)
        tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp.write_text(value, encoding="utf-8")
            os.replace(tmp, path)
        except (OSError, UnicodeEncodeError) as e:
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)
            raise StorageError(f"Failed to write {path}: {e}") from e
        self._written[key] = value

    def remove_item(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove {path}: {e}") from e
        self._written.pop(key, None)

    def is_own_write(self, key: str, value: str) -> bool:
        """Check whether ``value`` is what this process last wrote under ``key``."""
        return self._written.get(key) == value

    def watch(self, listener: StorageListener) -> Callable[[], None]:
        from todosync.watcher import StorageWatcher

        watcher = StorageWatcher(self, listener)
        watcher.start()
        return watcher.stop
