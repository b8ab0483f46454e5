"""Watches a FileStorage directory for writes made by other processes."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from todosync.errors import StorageError
from todosync.storage import StorageEvent, StorageListener

if TYPE_CHECKING:
    from watchdog.events import FileSystemEvent

    from todosync.storage import FileStorage

logger = logging.getLogger(__name__)


def _as_str(path: str | bytes) -> str:
    if isinstance(path, bytes):
        return path.decode("utf-8")
    return path


class _StorageEventHandler(FileSystemEventHandler):
    """Turns file events into StorageEvents for the keys of one FileStorage."""

    def __init__(self, storage: FileStorage, listener: StorageListener) -> None:
        super().__init__()
        self._storage = storage
        self._listener = listener
        self._last_seen: dict[str, str | None] = {}

    def _key_for(self, path: str) -> str | None:
        """Map a file path back to its storage key, or None if it isn't one."""
        p = Path(path)
        if p.parent.resolve() != self._storage.directory.resolve():
            return None
        # Temporary files used for atomic writes start with a dot
        if p.suffix != ".json" or p.name.startswith("."):
            return None
        return p.stem

    def _emit(self, path: str) -> None:
        key = self._key_for(path)
        if key is None:
            return
        try:
            value = self._storage.get_item(key)
        except StorageError as e:
            logger.warning("Could not read changed key %s: %s", key, e)
            return

        if value is not None and self._storage.is_own_write(key, value):
            return
        # A single write often produces several events with the same content
        if key in self._last_seen and self._last_seen[key] == value:
            return
        self._last_seen[key] = value

        logger.debug("Storage key %s changed externally", key)
        self._listener(StorageEvent(key=key, new_value=value))

    def on_created(self, event: FileSystemEvent) -> None:
        if isinstance(event, FileCreatedEvent):
            self._emit(_as_str(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if isinstance(event, FileModifiedEvent):
            self._emit(_as_str(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        # Atomic writes show up as a rename onto the target file
        if isinstance(event, FileMovedEvent):
            self._emit(_as_str(event.dest_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if isinstance(event, FileDeletedEvent):
            self._emit(_as_str(event.src_path))


class StorageWatcher:
    """Watches a FileStorage directory using watchdog.

    The listener runs on the watchdog observer thread; callers that own an
    event loop must hand the event over themselves.

    Example:
        watcher = StorageWatcher(storage, on_event)
        watcher.start()
        # ... other processes write ...
        watcher.stop()
    """

    def __init__(self, storage: FileStorage, listener: StorageListener) -> None:
        self._storage = storage
        self._handler = _StorageEventHandler(storage, listener)
        self._observer = Observer()
        self._started = False

    def start(self) -> None:
        """Start watching. Creates the storage directory if needed."""
        if self._started:
            return

        # Threads can only be started once
        if not self._observer.is_alive():
            self._observer = Observer()

        self._storage.directory.mkdir(parents=True, exist_ok=True)
        self._observer.schedule(self._handler, str(self._storage.directory), recursive=False)
        self._observer.start()
        self._started = True

    def stop(self) -> None:
        """Stop the observer thread and wait for it to finish."""
        if not self._started:
            return

        self._observer.stop()
        self._observer.join()
        self._started = False

    @property
    def is_running(self) -> bool:
        return self._started
