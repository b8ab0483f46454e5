"""Application orchestrator.

TodoApp wires the task store, filters, theme, persistence and cross-process
sync together and is the only surface front ends need to call.

Lifecycle:
    UNINITIALIZED -> HYDRATING -> LIVE -> CLOSED

``start()`` loads the persisted snapshot (or seeds sample tasks), then
registers the debounced auto-save, cross-process sync and an ``atexit``
final save. ``close()`` cancels auto-save, stops sync, and performs the
final save.
"""

from __future__ import annotations

import atexit
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from todosync.config import AppConfig
from todosync.filters import FilterEngine, SearchInfo, TaskCounts
from todosync.models import Snapshot, Task, utc_now_iso
from todosync.persistence import AutoSave, PersistenceController, StorageInfo
from todosync.storage import FileStorage, MemoryStorage, Storage
from todosync.store import TaskStore
from todosync.sync import CrossTabSync
from todosync.theme import SystemPreferences, ThemeController

logger = logging.getLogger(__name__)


class Phase(Enum):
    UNINITIALIZED = "uninitialized"
    HYDRATING = "hydrating"
    LIVE = "live"
    CLOSED = "closed"


class TodoApp:
    """The task list application state and its action surface."""

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        storage: Storage | None = None,
        system: SystemPreferences | None = None,
    ) -> None:
        """Build the components. Nothing is read or written until start().

        Args:
            config: Application configuration. Defaults are used if omitted.
            storage: Durable store. Defaults to a FileStorage in the
                configured directory.
            system: System theme signals. Defaults to the configured values.
        """
        self.config = config or AppConfig()
        if storage is None:
            storage = FileStorage(self.config.storage.directory)
        if system is None:
            system = SystemPreferences(
                prefers_dark=self.config.theme.system_prefers_dark,
                reduced_motion=self.config.theme.reduced_motion,
            )

        self.persistence = PersistenceController(
            storage,
            key=self.config.storage.key,
            quota_bytes=self.config.storage.quota_bytes,
        )
        self.store = TaskStore(
            max_text_length=self.config.tasks.max_text_length,
            submit_latency=self.config.tasks.submit_latency_ms / 1000,
        )
        self.filters = FilterEngine(self.store)
        self.theme = ThemeController(system)

        self.phase = Phase.UNINITIALIZED
        self._autosave: AutoSave | None = None
        self._sync: CrossTabSync | None = None

    # Lifecycle

    def start(self) -> TodoApp:
        """Hydrate from storage and begin auto-saving and syncing.

        Call from inside a running event loop so debounced saves and sync
        events are scheduled on it.
        """
        if self.phase is not Phase.UNINITIALIZED:
            raise RuntimeError(f"Cannot start app in phase {self.phase.value}")

        self.phase = Phase.HYDRATING
        if not self.persistence.is_available():
            logger.warning("Storage unavailable; changes will be kept in memory only")
            self.persistence.storage = MemoryStorage()
        self.hydrate()

        self._autosave = self.persistence.auto_save(
            [self.store, self.filters, self.theme],
            self.snapshot,
            debounce_ms=self.config.autosave.debounce_ms,
            deep=self.config.autosave.deep,
        )
        if self.config.sync.enabled:
            self._sync = CrossTabSync(
                self.persistence.storage,
                self.persistence.key,
                self.store,
                self.filters,
                self.theme,
            )
            self._sync.start()
        atexit.register(self._final_flush)

        self.phase = Phase.LIVE
        logger.debug("App live with %d tasks", len(self.store.tasks))
        return self

    def close(self) -> None:
        """Tear down watchers and write a final snapshot."""
        if self.phase is Phase.CLOSED:
            return

        if self._autosave is not None:
            self._autosave.cancel()
            self._autosave = None
        if self._sync is not None:
            self._sync.stop()
            self._sync = None

        if self.phase is Phase.LIVE:
            self.save_now()
        atexit.unregister(self._final_flush)
        self.phase = Phase.CLOSED

    def _final_flush(self) -> None:
        if self.phase is Phase.LIVE:
            self.save_now()

    async def __aenter__(self) -> TodoApp:
        return self.start()

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    # Persistence

    def hydrate(self) -> bool:
        """Load state from storage. Returns False if sample data was seeded instead."""
        data = self.persistence.load()
        if data is None:
            if self.config.tasks.seed_sample_data:
                self.store.load_sample_data()
            else:
                self.store.reset()
            self.theme.use_system_preference()
            return False

        self._restore(data)
        return True

    def _restore(self, data: Mapping[str, Any]) -> None:
        if "tasks" in data:
            fallback = data.get("nextTaskId") or data.get("nextId") or 1
            tasks, next_id = self.persistence.validate_and_repair(data["tasks"], fallback)
            self.store.replace_all(tasks, next_id)

        self.theme.initialize_from_data(data)

        filters = data.get("filters")
        if isinstance(filters, Mapping):
            self.filters.restore_state(filters)
        elif "currentFilter" in data:
            # Older snapshots kept the filter fields at the top level
            self.filters.restore_state(data)

    def snapshot(self) -> Snapshot:
        """Build a snapshot of the current in-memory state."""
        return Snapshot(
            tasks=[task.model_copy() for task in self.store.tasks],
            next_task_id=self.store.next_id,
            filters=self.filters.get_state(),
            theme=self.theme.get_state(),
            last_updated=utc_now_iso(),
        )

    def save_now(self) -> bool:
        """Save immediately, bypassing the debounce."""
        if self._autosave is not None:
            # This write covers any pending debounced save
            self._autosave.discard_pending()
        return self.persistence.save(self.snapshot())

    @property
    def save_pending(self) -> bool:
        return self._autosave is not None and self._autosave.pending

    # Read views

    @property
    def tasks(self) -> list[Task]:
        """Tasks in the store's default order (pending first)."""
        return self.store.sorted_tasks

    @property
    def filtered_tasks(self) -> list[Task]:
        return self.filters.filtered_tasks

    @property
    def task_counts(self) -> TaskCounts:
        return self.filters.task_counts

    @property
    def search_info(self) -> SearchInfo:
        return self.filters.search_info

    @property
    def is_dark_mode(self) -> bool:
        return self.theme.is_dark_mode

    @property
    def is_submitting(self) -> bool:
        return self.store.is_submitting

    # Task actions

    async def add_task(self, text: str) -> Task | None:
        return await self.store.add(text)

    def toggle_task(self, task_id: int) -> Task | None:
        return self.store.toggle_complete(task_id)

    def delete_task(self, task_id: int) -> Task | None:
        return self.store.delete(task_id)

    def update_task(self, task_id: int, changes: Mapping[str, Any]) -> Task | None:
        return self.store.update(task_id, changes)

    def clear_completed(self) -> int:
        return self.store.clear_completed()

    def mark_all_complete(self) -> int:
        return self.store.mark_all_complete()

    def mark_all_incomplete(self) -> int:
        return self.store.mark_all_incomplete()

    # Filter actions

    def set_filter(self, value: str) -> bool:
        return self.filters.set_filter(value)

    def set_search(self, query: str) -> bool:
        return self.filters.set_search(query)

    def clear_search(self) -> None:
        self.filters.clear_search()

    def set_sorting(self, sort_by: str, sort_order: str = "asc") -> bool:
        return self.filters.set_sorting(sort_by, sort_order)

    def toggle_sort_order(self) -> None:
        self.filters.toggle_sort_order()

    def reset_filters(self) -> None:
        self.filters.reset()

    # Theme actions

    def set_theme(self, dark: bool) -> None:
        self.theme.set_theme(dark)

    def toggle_theme(self) -> None:
        self.theme.toggle_theme()

    def use_system_theme(self) -> None:
        self.theme.use_system_preference()

    # Data management

    def export_data(self) -> str | None:
        """Export the persisted snapshot. Pending changes are saved first."""
        if self.save_pending:
            self.save_now()
        return self.persistence.export_snapshot()

    def import_data(self, text: str) -> bool:
        """Import an exported snapshot and reload state from storage."""
        if not self.persistence.import_snapshot(text):
            return False
        # Stale debounced state must not overwrite the import
        if self._autosave is not None:
            self._autosave.discard_pending()
        self.hydrate()
        return True

    def clear_all_data(self) -> None:
        """Remove persisted data and reset every component to defaults."""
        self.persistence.clear()
        self.store.reset()
        self.filters.reset()
        self.theme.use_system_preference()

    def is_storage_available(self) -> bool:
        return self.persistence.is_available()

    def storage_info(self) -> StorageInfo:
        return self.persistence.storage_info()

    def get_stats(self) -> dict[str, Any]:
        return {
            "tasks": self.store.stats,
            "storage": self.storage_info(),
            "theme": self.theme.info,
            "accessibility": self.theme.accessibility_info,
            "filters": {
                "active": self.filters.has_active_filters,
                "description": self.filters.description,
                "counts": self.filters.task_counts,
            },
        }
