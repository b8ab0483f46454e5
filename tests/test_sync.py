"""Tests for todosync.sync module."""

from __future__ import annotations

import asyncio
import json

import pytest

from todosync.errors import StorageError
from todosync.filters import FilterEngine
from todosync.models import Task
from todosync.storage import FileStorage, MemoryStorage, StorageEvent
from todosync.store import TaskStore
from todosync.sync import CrossTabSync
from todosync.theme import ThemeController

KEY = "todo-app-data"


class UnwatchableStorage(MemoryStorage):
    def watch(self, listener):
        raise StorageError("no watcher available")


class ClosingLoop:
    """Loop that reports open but closes before the callback is queued."""

    def is_closed(self) -> bool:
        return False

    def call_soon_threadsafe(self, callback, *args):
        raise RuntimeError("Event loop is closed")


@pytest.fixture
def components(store: TaskStore) -> tuple[TaskStore, FilterEngine, ThemeController]:
    store.replace_all(
        [Task(id=1, text="Local", created_at="2025-01-10T10:00:00.000Z", updated_at="2025-01-10T10:00:00.000Z")],
        2,
    )
    return store, FilterEngine(store), ThemeController()


@pytest.fixture
def sync(memory_storage: MemoryStorage, components) -> CrossTabSync:
    store, filters, theme = components
    return CrossTabSync(memory_storage, KEY, store, filters, theme)


def _event(payload: object, key: str = KEY) -> StorageEvent:
    return StorageEvent(key=key, new_value=json.dumps(payload))


class TestHandleEvent:
    """Tests for applying remote snapshots."""

    def test_replaces_tasks_and_allocator(self, sync: CrossTabSync) -> None:
        """Test remote tasks replace local ones and repair the allocator."""
        applied = sync.handle_event(
            _event({"tasks": [{"id": 9, "text": "Remote", "completed": True}], "nextTaskId": 2})
        )

        assert applied is True
        assert [(t.id, t.text, t.completed) for t in sync.store.tasks] == [(9, "Remote", True)]
        assert sync.store.next_id == 10

    def test_theme_respects_manual_preference(self, sync: CrossTabSync) -> None:
        """Test a manual light choice is not overridden by a remote dark flag."""
        sync.theme.set_theme(False)

        sync.handle_event(_event({"tasks": [], "theme": {"isDarkMode": True}}))

        assert sync.theme.is_dark_mode is False
        assert sync.store.tasks == []

    def test_theme_applied_without_manual_preference(self, sync: CrossTabSync) -> None:
        """Test the remote flag applies when the user has not chosen."""
        sync.handle_event(_event({"tasks": [], "theme": {"isDarkMode": True}}))
        assert sync.theme.is_dark_mode is True
        assert sync.theme.has_manual_preference is False

    def test_filter_goes_through_validation(self, sync: CrossTabSync) -> None:
        """Test valid filters apply and invalid ones are ignored."""
        sync.handle_event(_event({"filters": {"currentFilter": "completed"}}))
        assert sync.filters.current_filter == "completed"

        sync.handle_event(_event({"filters": {"currentFilter": "archived"}}))
        assert sync.filters.current_filter == "completed"

    def test_legacy_flat_keys(self, sync: CrossTabSync) -> None:
        """Test top-level currentFilter, isDarkMode and nextId are understood."""
        sync.handle_event(
            _event(
                {
                    "tasks": [{"text": "a"}, {"text": "b"}],
                    "nextId": 5,
                    "currentFilter": "pending",
                    "isDarkMode": True,
                }
            )
        )
        assert [t.id for t in sync.store.tasks] == [5, 6]
        assert sync.store.next_id == 7
        assert sync.filters.current_filter == "pending"
        assert sync.theme.is_dark_mode is True

    def test_tasks_absent_leaves_tasks(self, sync: CrossTabSync) -> None:
        """Test a payload without tasks only touches preferences."""
        sync.handle_event(_event({"filters": {"currentFilter": "pending"}}))
        assert [t.text for t in sync.store.tasks] == ["Local"]

    def test_unusable_ids_are_repaired(self, sync: CrossTabSync) -> None:
        """Test ids that only look numeric are replaced rather than failing."""
        assert sync.handle_event(_event({"tasks": [{"id": "\u00b2", "text": "Remote"}], "nextTaskId": "\u00b2"}))
        assert [(t.id, t.text) for t in sync.store.tasks] == [(1, "Remote")]
        assert sync.store.next_id == 2

    def test_other_key_ignored(self, sync: CrossTabSync) -> None:
        """Test events for other keys are ignored."""
        assert sync.handle_event(_event({"tasks": []}, key="something-else")) is False
        assert len(sync.store.tasks) == 1

    def test_removal_ignored(self, sync: CrossTabSync) -> None:
        """Test a removed key does not clear local state."""
        assert sync.handle_event(StorageEvent(key=KEY, new_value=None)) is False
        assert len(sync.store.tasks) == 1

    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            "[1, 2, 3]",
            '"a string"',
            '{"tasks": "oops", "currentFilter": "completed"}',
            '{"tasks": {"id": 1}}',
        ],
    )
    def test_malformed_payload_changes_nothing(self, sync: CrossTabSync, raw: str) -> None:
        """Test malformed payloads are dropped without partial application."""
        assert sync.handle_event(StorageEvent(key=KEY, new_value=raw)) is False
        assert [t.text for t in sync.store.tasks] == ["Local"]
        assert sync.store.next_id == 2
        assert sync.filters.current_filter == "all"
        assert sync.theme.is_dark_mode is False

    def test_repeated_event_is_silent(self, sync: CrossTabSync) -> None:
        """Test re-applying the same snapshot does not notify subscribers."""
        payload = {
            "tasks": [{"id": 1, "text": "x", "createdAt": "2025-01-10T10:00:00.000Z"}],
            "nextTaskId": 2,
        }
        sync.handle_event(_event(payload))

        changes = []
        sync.store.subscribe(changes.append)
        sync.handle_event(_event(payload))
        assert changes == []


class TestLifecycle:
    """Tests for starting and stopping sync."""

    def test_start_stop(self, sync: CrossTabSync) -> None:
        """Test start and stop toggle is_running."""
        assert sync.start() is True
        assert sync.is_running is True
        sync.stop()
        assert sync.is_running is False

    def test_start_failure(self, components) -> None:
        """Test storage that cannot be watched disables sync."""
        store, filters, theme = components
        sync = CrossTabSync(UnwatchableStorage(), KEY, store, filters, theme)
        assert sync.start() is False
        assert sync.is_running is False

    @pytest.mark.asyncio
    async def test_events_are_marshalled_to_loop(self, sync: CrossTabSync) -> None:
        """Test events are applied on the loop, not the calling thread."""
        sync.start()
        sync._on_event(_event({"tasks": [], "nextTaskId": 3}))
        assert len(sync.store.tasks) == 1

        await asyncio.sleep(0)
        assert sync.store.tasks == []
        sync.stop()

    def test_event_for_closing_loop_is_dropped(self, sync: CrossTabSync) -> None:
        """Test an event racing loop shutdown is dropped without raising."""
        sync.start()
        sync._loop = ClosingLoop()

        sync._on_event(_event({"tasks": []}))

        assert len(sync.store.tasks) == 1
        sync.stop()

    @pytest.mark.asyncio
    async def test_events_after_stop_are_dropped(self, sync: CrossTabSync) -> None:
        """Test an event queued before stop is not applied after it."""
        sync.start()
        sync._on_event(_event({"tasks": []}))
        sync.stop()

        await asyncio.sleep(0)
        assert len(sync.store.tasks) == 1

    @pytest.mark.asyncio
    async def test_file_storage_between_processes(self, file_storage: FileStorage, components) -> None:
        """Test a write from a second storage instance reaches local state."""
        store, filters, theme = components
        sync = CrossTabSync(file_storage, KEY, store, filters, theme)
        assert sync.start() is True
        try:
            other = FileStorage(file_storage.directory)
            other.set_item(KEY, json.dumps({"tasks": [{"id": 3, "text": "From elsewhere"}], "nextTaskId": 4}))

            for _ in range(100):
                if store.get(3) is not None:
                    break
                await asyncio.sleep(0.05)
        finally:
            sync.stop()

        assert [t.text for t in store.tasks] == ["From elsewhere"]
        assert store.next_id == 4
