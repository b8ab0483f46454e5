"""Task store - the canonical task list and id allocator."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from todosync.errors import TaskValidationError
from todosync.models import MAX_TEXT_LENGTH, Task, utc_now_iso
from todosync.observable import Observable

logger = logging.getLogger(__name__)

SAMPLE_TASKS = (
    "Welcome to your To-Do app! 👋",
    "Try adding a new task above",
    "Mark this task as complete",
)


@dataclass(frozen=True)
class TaskStats:
    """Summary counts for the whole task list."""

    total: int
    completed: int
    pending: int
    completion_percentage: int


class TaskStore(Observable):
    """Owns the task collection and the next-id allocator.

    All mutations go through this class and notify subscribers. Callers get
    the live Task objects back but must not modify their fields directly.
    """

    change_source = "tasks"

    def __init__(
        self,
        *,
        max_text_length: int = MAX_TEXT_LENGTH,
        submit_latency: float = 0.3,
    ) -> None:
        """Initialise an empty store.

        Args:
            max_text_length: Longest allowed task text after trimming.
            submit_latency: Seconds `add` waits before committing a task.
        """
        super().__init__()
        self.max_text_length = max_text_length
        self.submit_latency = submit_latency
        self.tasks: list[Task] = []
        self.next_id = 1
        self.is_submitting = False

    # Derived views

    @property
    def sorted_tasks(self) -> list[Task]:
        """Pending tasks first, then completed; insertion (id) order within each."""
        return sorted(self.tasks, key=lambda t: (t.completed, t.id))

    @property
    def completed_tasks(self) -> list[Task]:
        return [t for t in self.tasks if t.completed]

    @property
    def pending_tasks(self) -> list[Task]:
        return [t for t in self.tasks if not t.completed]

    @property
    def stats(self) -> TaskStats:
        total = len(self.tasks)
        completed = len(self.completed_tasks)
        percentage = 0 if total == 0 else round(completed / total * 100)
        return TaskStats(
            total=total,
            completed=completed,
            pending=total - completed,
            completion_percentage=percentage,
        )

    def get(self, task_id: int) -> Task | None:
        """Get a task by ID."""
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    # Mutations

    def _validate_text(self, text: str) -> str:
        trimmed = text.strip()
        if len(trimmed) > self.max_text_length:
            raise TaskValidationError(
                f"Task cannot exceed {self.max_text_length} characters"
            )
        return trimmed

    async def add(self, text: str) -> Task | None:
        """Add a task after the simulated submit latency.

        Returns None without touching the store if the text is blank.

        Raises:
            TaskValidationError: If the trimmed text is too long.
        """
        if not text or not text.strip():
            return None
        trimmed = self._validate_text(text)

        self.is_submitting = True
        try:
            if self.submit_latency > 0:
                await asyncio.sleep(self.submit_latency)

            now = utc_now_iso()
            task = Task(id=self.next_id, text=trimmed, created_at=now, updated_at=now)
            self.next_id += 1
            self.tasks.append(task)
        finally:
            self.is_submitting = False

        logger.debug("Added task %d", task.id)
        self._notify(deep=True)
        return task

    def toggle_complete(self, task_id: int) -> Task | None:
        """Flip a task's completed flag."""
        task = self.get(task_id)
        if task is None:
            return None
        task.completed = not task.completed
        task.touch()
        self._notify(deep=True)
        return task

    def update(self, task_id: int, changes: Mapping[str, Any]) -> Task | None:
        """Apply a partial update to a task.

        Only ``text`` and ``completed`` can be changed; ids and timestamps are
        owned by the store.

        Raises:
            TaskValidationError: If the new text is blank or too long.
        """
        task = self.get(task_id)
        if task is None:
            return None

        if "text" in changes:
            text = changes["text"]
            if not isinstance(text, str) or not text.strip():
                raise TaskValidationError("Task text cannot be empty")
            task.text = self._validate_text(text)
        if "completed" in changes:
            task.completed = bool(changes["completed"])

        task.touch()
        self._notify(deep=True)
        return task

    def delete(self, task_id: int) -> Task | None:
        """Remove a task and return it."""
        task = self.get(task_id)
        if task is None:
            return None
        self.tasks.remove(task)
        self._notify()
        return task

    def clear_completed(self) -> int:
        """Remove all completed tasks, returning how many were removed."""
        remaining = [t for t in self.tasks if not t.completed]
        removed = len(self.tasks) - len(remaining)
        self.tasks = remaining
        if removed:
            self._notify()
        return removed

    def _mark_all(self, completed: bool) -> int:
        changed = 0
        for task in self.tasks:
            if task.completed != completed:
                task.completed = completed
                task.touch()
                changed += 1
        if changed:
            self._notify(deep=True)
        return changed

    def mark_all_complete(self) -> int:
        """Mark every pending task complete. Returns the number changed."""
        return self._mark_all(True)

    def mark_all_incomplete(self) -> int:
        """Mark every completed task pending. Returns the number changed."""
        return self._mark_all(False)

    def replace_all(self, tasks: Iterable[Task], next_id: int) -> bool:
        """Replace the whole collection and allocator.

        Used when hydrating from storage and when another process broadcasts
        a snapshot. Returns False (and stays silent) when nothing differs.
        """
        tasks = list(tasks)
        if tasks == self.tasks and next_id == self.next_id:
            return False
        self.tasks = tasks
        self.next_id = next_id
        self._notify()
        return True

    def load_sample_data(self) -> None:
        """Seed the store with the welcome tasks."""
        now = utc_now_iso()
        samples = [
            Task(id=i, text=text, created_at=now, updated_at=now)
            for i, text in enumerate(SAMPLE_TASKS, start=1)
        ]
        self.replace_all(samples, len(samples) + 1)

    def reset(self) -> None:
        """Remove every task and restart ids at 1."""
        self.replace_all([], 1)
