"""Cross-process synchronisation over a shared storage key.

Another process saving the same key produces a StorageEvent. The payload is
validated and applied wholesale: the task list and allocator are replaced
(last writer wins), the status filter goes through the normal validating
setter, and a theme flag is applied only while this process has no manual
theme choice. Tasks have no such guard.

Delivery is best effort. There is no acknowledgement or retry; the next
save from any process re-broadcasts its full state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any

from todosync.errors import MalformedDataError, StorageError
from todosync.filters import FilterEngine
from todosync.persistence import parse_json, validate_and_repair
from todosync.storage import Storage, StorageEvent
from todosync.store import TaskStore
from todosync.theme import ThemeController

logger = logging.getLogger(__name__)


def _filter_selection(data: Mapping[str, Any]) -> Any:
    filters = data.get("filters")
    if isinstance(filters, Mapping) and "currentFilter" in filters:
        return filters["currentFilter"]
    return data.get("currentFilter")


def _theme_flag(data: Mapping[str, Any]) -> bool | None:
    theme = data.get("theme")
    source = theme if isinstance(theme, Mapping) else data
    dark = source.get("isDarkMode")
    return dark if isinstance(dark, bool) else None


class CrossTabSync:
    """Applies snapshots written by other processes to local state."""

    def __init__(
        self,
        storage: Storage,
        key: str,
        store: TaskStore,
        filters: FilterEngine,
        theme: ThemeController,
    ) -> None:
        self.storage = storage
        self.key = key
        self.store = store
        self.filters = filters
        self.theme = theme
        self._loop: asyncio.AbstractEventLoop | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def is_running(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> bool:
        """Begin listening. Returns False if the storage cannot be watched."""
        if self._unsubscribe is not None:
            return True
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

        try:
            self._unsubscribe = self.storage.watch(self._on_event)
        except (OSError, StorageError) as e:
            logger.warning("Cross-process sync disabled: %s", e)
            return False
        return True

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._loop = None

    def _on_event(self, event: StorageEvent) -> None:
        # Watchers deliver on their own thread; state is only touched on the loop
        loop = self._loop
        if loop is not None and not loop.is_closed():
            try:
                loop.call_soon_threadsafe(self._handle_if_running, event)
            except RuntimeError:
                # The loop closed after the check above
                logger.debug("Dropping storage event for %s: event loop is closed", event.key)
        else:
            self.handle_event(event)

    def _handle_if_running(self, event: StorageEvent) -> None:
        if self._unsubscribe is not None:
            self.handle_event(event)

    def handle_event(self, event: StorageEvent) -> bool:
        """Apply one storage notification. Returns True if it was applied.

        Events for other keys, removals, unparsable payloads and payloads
        with a non-list ``tasks`` field are ignored without touching state.
        """
        if event.key != self.key or not event.new_value:
            return False

        try:
            data = parse_json(event.new_value)
        except MalformedDataError as e:
            logger.warning("Failed to sync storage change: %s", e)
            return False
        if not isinstance(data, dict):
            logger.warning("Failed to sync storage change: payload is not an object")
            return False
        if "tasks" in data and not isinstance(data["tasks"], list):
            logger.warning("Failed to sync storage change: tasks is not a list")
            return False

        if "tasks" in data:
            fallback = data.get("nextTaskId") or data.get("nextId") or 1
            tasks, next_id = validate_and_repair(data["tasks"], fallback)
            self.store.replace_all(tasks, next_id)

        selection = _filter_selection(data)
        if selection is not None:
            self.filters.set_filter(selection)

        dark = _theme_flag(data)
        if dark is not None:
            self.theme.apply_remote(dark)

        logger.debug("Applied snapshot from another process")
        return True
