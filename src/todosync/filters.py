"""Filtering, search and sorting of tasks.

The module-level functions are pure and can be used on any task list.
FilterEngine holds the user's current selection and derives the visible
tasks from a TaskStore.
"""

from __future__ import annotations

import locale
import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from todosync.models import (
    FILTER_OPTIONS,
    SORT_LABELS,
    SORT_OPTIONS,
    SORT_ORDERS,
    FilterState,
    Task,
    parse_timestamp,
)
from todosync.observable import Observable
from todosync.store import TaskStore

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class TaskCounts:
    all: int
    pending: int
    completed: int


@dataclass(frozen=True)
class SearchInfo:
    """How the search query narrows the status-filtered tasks."""

    has_query: bool
    query: str
    original_count: int
    filtered_count: int
    has_results: bool
    is_filtered: bool


def filter_by_status(tasks: Iterable[Task], status: str) -> list[Task]:
    """Keep tasks matching a status filter ("all", "pending" or "completed")."""
    if status == "pending":
        return [t for t in tasks if not t.completed]
    if status == "completed":
        return [t for t in tasks if t.completed]
    return list(tasks)


def filter_by_search(tasks: Iterable[Task], query: str) -> list[Task]:
    """Case-insensitive substring match on task text. Blank queries match all."""
    term = query.strip().casefold()
    if not term:
        return list(tasks)
    return [t for t in tasks if term in t.text.casefold()]


def _timestamp(value: str | None) -> float:
    parsed = parse_timestamp(value)
    return (parsed or _EPOCH).timestamp()


def _sort_key(sort_by: str) -> Callable[[Task], Any]:
    if sort_by == "updated":
        return lambda t: _timestamp(t.updated_at or t.created_at)
    if sort_by == "text":
        # Case-insensitive first, case only breaks ties
        return lambda t: (locale.strxfrm(t.text.casefold()), locale.strxfrm(t.text))
    if sort_by == "status":
        return lambda t: (t.completed, _timestamp(t.created_at))
    return lambda t: _timestamp(t.created_at)


def sort_tasks(tasks: Iterable[Task], sort_by: str, sort_order: str = "asc") -> list[Task]:
    """Stable sort by the given key.

    Descending order reverses the comparison only; tasks with equal keys keep
    their input order in both directions.
    """
    return sorted(tasks, key=_sort_key(sort_by), reverse=sort_order == "desc")


def filter_by_date_range(tasks: Iterable[Task], start: datetime, end: datetime) -> list[Task]:
    """Keep tasks created within [start, end]. Naive bounds are read as UTC."""
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    result = []
    for task in tasks:
        created = parse_timestamp(task.created_at)
        if created is not None and start <= created <= end:
            result.append(task)
    return result


def filter_by_text_length(
    tasks: Iterable[Task], min_length: int = 0, max_length: float = math.inf
) -> list[Task]:
    return [t for t in tasks if min_length <= len(t.text) <= max_length]


class FilterEngine(Observable):
    """The current filter selection and the views derived from it."""

    change_source = "filters"

    def __init__(self, store: TaskStore) -> None:
        super().__init__()
        self._store = store
        self.current_filter = "all"
        self.search_query = ""
        self.sort_by = "created"
        self.sort_order = "asc"

    # Derived views

    @property
    def filtered_tasks(self) -> list[Task]:
        result = filter_by_status(self._store.tasks, self.current_filter)
        result = filter_by_search(result, self.search_query)
        return sort_tasks(result, self.sort_by, self.sort_order)

    @property
    def task_counts(self) -> TaskCounts:
        tasks = self._store.tasks
        completed = sum(1 for t in tasks if t.completed)
        return TaskCounts(all=len(tasks), pending=len(tasks) - completed, completed=completed)

    @property
    def search_info(self) -> SearchInfo:
        has_query = bool(self.search_query.strip())
        original_count = len(filter_by_status(self._store.tasks, self.current_filter))
        filtered_count = len(self.filtered_tasks)
        return SearchInfo(
            has_query=has_query,
            query=self.search_query,
            original_count=original_count,
            filtered_count=filtered_count,
            has_results=filtered_count > 0,
            is_filtered=has_query and filtered_count != original_count,
        )

    @property
    def has_active_filters(self) -> bool:
        return (
            self.current_filter != "all"
            or bool(self.search_query.strip())
            or self.sort_by != "created"
            or self.sort_order != "asc"
        )

    @property
    def description(self) -> str:
        """Human readable summary of the active filters."""
        parts = []
        if self.current_filter != "all":
            parts.append(f"showing {self.current_filter} tasks")
        if self.search_query.strip():
            parts.append(f'searching for "{self.search_query}"')
        if self.sort_by != "created" or self.sort_order != "asc":
            label = SORT_LABELS.get(self.sort_by, self.sort_by)
            parts.append(f"sorted by {label} ({self.sort_order})")
        return ", ".join(parts) if parts else "showing all tasks"

    # Setters. Unknown option values are ignored and the current selection kept.

    def set_filter(self, value: Any) -> bool:
        """Select a status filter. Returns True if the value was accepted."""
        if value not in FILTER_OPTIONS:
            return False
        if value != self.current_filter:
            self.current_filter = value
            self._notify()
        return True

    def set_search(self, query: Any) -> bool:
        if not isinstance(query, str):
            return False
        if query != self.search_query:
            self.search_query = query
            self._notify()
        return True

    def clear_search(self) -> None:
        self.set_search("")

    def set_sorting(self, sort_by: Any, sort_order: Any = "asc") -> bool:
        """Select a sort key and direction. Both must be known options."""
        if sort_by not in SORT_OPTIONS or sort_order not in SORT_ORDERS:
            return False
        if (sort_by, sort_order) != (self.sort_by, self.sort_order):
            self.sort_by = sort_by
            self.sort_order = sort_order
            self._notify()
        return True

    def toggle_sort_order(self) -> None:
        self.set_sorting(self.sort_by, "desc" if self.sort_order == "asc" else "asc")

    def show_all(self) -> None:
        self.set_filter("all")

    def show_pending(self) -> None:
        self.set_filter("pending")

    def show_completed(self) -> None:
        self.set_filter("completed")

    # State management

    def get_state(self) -> FilterState:
        return FilterState(
            current_filter=self.current_filter,  # type: ignore[arg-type]
            search_query=self.search_query,
            sort_by=self.sort_by,  # type: ignore[arg-type]
            sort_order=self.sort_order,  # type: ignore[arg-type]
        )

    def restore_state(self, state: Mapping[str, Any]) -> None:
        """Restore a persisted selection given as a camelCase mapping.

        Each field goes through its validating setter, so unknown values in
        foreign or stale data are dropped individually.
        """
        if state.get("currentFilter"):
            self.set_filter(state["currentFilter"])
        if state.get("searchQuery") is not None:
            self.set_search(state["searchQuery"])
        if state.get("sortBy") or state.get("sortOrder"):
            self.set_sorting(state.get("sortBy") or self.sort_by, state.get("sortOrder") or "asc")

    def reset(self) -> None:
        changed = self.get_state() != FilterState()
        self.current_filter = "all"
        self.search_query = ""
        self.sort_by = "created"
        self.sort_order = "asc"
        if changed:
            self._notify()
