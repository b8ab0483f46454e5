"""Persistence controller - snapshots, repair, auto-save and import/export.

Every failure here is reported as a return value (False / None) and logged;
nothing propagates to the caller. The in-memory state stays authoritative
when the durable store misbehaves.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from todosync.debounce import Debouncer
from todosync.errors import MalformedDataError, StorageError
from todosync.models import SNAPSHOT_VERSION, Snapshot, Task, parse_timestamp, utc_now_iso
from todosync.observable import Change, Observable
from todosync.storage import Storage

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "todo-app-data"
DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024
EXPORT_METADATA_KEYS = ("exportedAt", "version")

_PROBE_KEY = "__storage_test__"


@dataclass(frozen=True)
class StorageInfo:
    """Estimated usage of the durable store. The quota is not enforced."""

    used: int
    quota: int
    available: int
    usage_percentage: float
    error: str | None = None


def parse_json(text: str) -> Any:
    """Parse JSON text.

    Raises:
        MalformedDataError: If the text is not valid JSON.
    """
    try:
        return json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedDataError(f"Invalid JSON: {e}") from e


def _coerce_id(value: Any) -> int | None:
    """Return a positive integer id, or None if the value can't be one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float) and value.is_integer() and value > 0:
        return int(value)
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value) or None
    return None


def validate_and_repair(raw_tasks: Any, fallback_next_id: Any = 1) -> tuple[list[Task], int]:
    """Normalise untrusted task data into Tasks and a safe next id.

    Missing or unusable ids are synthesised as ``fallback_next_id + index``,
    moved past any id already taken so ids stay unique. ``completed`` is
    coerced to bool and missing timestamps are filled with the current time.
    Entries that are not objects are dropped.

    The returned next id is ``max(fallback_next_id, max(id) + 1)``, which
    keeps the allocator ahead of stale or foreign data.

    Valid input comes back unchanged, so repairing twice is the same as
    repairing once.
    """
    if not isinstance(raw_tasks, list):
        return [], 1

    fallback = _coerce_id(fallback_next_id) or 1

    entries: list[tuple[int, Mapping[str, Any]]] = []
    for index, item in enumerate(raw_tasks):
        if isinstance(item, Mapping):
            entries.append((index, item))
        else:
            logger.warning("Dropping malformed task entry at index %d", index)

    # Explicit ids win; the first occurrence of a duplicate keeps it
    used: set[int] = set()
    ids: dict[int, int] = {}
    for index, item in entries:
        task_id = _coerce_id(item.get("id"))
        if task_id is not None and task_id not in used:
            used.add(task_id)
            ids[index] = task_id

    for index, _ in entries:
        if index in ids:
            continue
        candidate = fallback + index
        if candidate in used:
            candidate = max(used) + 1
        used.add(candidate)
        ids[index] = candidate

    now = utc_now_iso()
    tasks: list[Task] = []
    for index, item in entries:
        created_at = item.get("createdAt")
        created = parse_timestamp(created_at)
        if created is None:
            created_at, created = now, parse_timestamp(now)

        updated_at = item.get("updatedAt")
        updated = parse_timestamp(updated_at)
        if updated is None or created is None or updated < created:
            updated_at = created_at

        text = item.get("text")
        if not isinstance(text, str):
            text = "" if text is None else str(text)

        tasks.append(
            Task(
                id=ids[index],
                text=text,
                completed=bool(item.get("completed")),
                created_at=created_at,
                updated_at=updated_at,
            )
        )

    max_id = max((t.id for t in tasks), default=0)
    return tasks, max(fallback, max_id + 1)


class AutoSave:
    """Handle for a running auto-save registration.

    Call ``cancel()`` on teardown so no timer fires after the owner is gone.
    """

    def __init__(
        self,
        controller: PersistenceController,
        watched: Sequence[Observable],
        build_snapshot: Callable[[], Snapshot],
        debounce_ms: int = 300,
        deep: bool = True,
    ) -> None:
        self._controller = controller
        self._build_snapshot = build_snapshot
        self._deep = deep
        self._debouncer = Debouncer(debounce_ms / 1000, self._save)
        self._unsubscribers = [source.subscribe(self._on_change) for source in watched]
        self.active = True

    def _on_change(self, change: Change) -> None:
        if change.deep and not self._deep:
            return
        self._debouncer.trigger()

    def _save(self) -> None:
        self._controller.save(self._build_snapshot())

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def flush(self) -> bool:
        """Save now if a debounced save is waiting."""
        return self._debouncer.flush()

    def discard_pending(self) -> None:
        """Drop a waiting save but keep observing."""
        self._debouncer.cancel()

    def cancel(self) -> None:
        """Stop observing and drop any pending save."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._debouncer.cancel()
        self.active = False


class PersistenceController:
    """Reads and writes snapshots under a single storage key."""

    def __init__(
        self,
        storage: Storage,
        key: str = DEFAULT_STORAGE_KEY,
        quota_bytes: int = DEFAULT_QUOTA_BYTES,
    ) -> None:
        self.storage = storage
        self.key = key
        self.quota_bytes = quota_bytes

    def save(self, snapshot: Snapshot | Mapping[str, Any]) -> bool:
        """Serialise and store a snapshot. Returns False on any failure."""
        data = snapshot.to_wire() if isinstance(snapshot, Snapshot) else dict(snapshot)
        try:
            text = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            logger.warning("Failed to serialise snapshot: %s", e)
            return False

        try:
            self.storage.set_item(self.key, text)
        except StorageError as e:
            logger.warning("Failed to save to storage: %s", e)
            return False
        return True

    def load(self) -> dict[str, Any] | None:
        """Load the persisted snapshot as a raw dict.

        Returns None if nothing is stored or the stored data is unreadable.
        The result is untrusted; pass its tasks through validate_and_repair.
        """
        try:
            raw = self.storage.get_item(self.key)
        except StorageError as e:
            logger.warning("Failed to load from storage: %s", e)
            return None
        if raw is None:
            return None

        try:
            data = parse_json(raw)
        except MalformedDataError as e:
            logger.warning("Ignoring corrupt snapshot under %s: %s", self.key, e)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring snapshot under %s: not a JSON object", self.key)
            return None
        return data

    def validate_and_repair(self, raw_tasks: Any, fallback_next_id: Any = 1) -> tuple[list[Task], int]:
        return validate_and_repair(raw_tasks, fallback_next_id)

    def auto_save(
        self,
        watched: Sequence[Observable],
        build_snapshot: Callable[[], Snapshot],
        *,
        debounce_ms: int = 300,
        deep: bool = True,
    ) -> AutoSave:
        """Save a fresh snapshot whenever a watched component changes.

        Bursts of changes within ``debounce_ms`` produce a single write. With
        ``deep=False`` only top-level replacements count as changes.
        """
        return AutoSave(self, watched, build_snapshot, debounce_ms=debounce_ms, deep=deep)

    def export_snapshot(self) -> str | None:
        """Return the persisted snapshot with export metadata as indented JSON."""
        data = self.load()
        if data is None:
            return None
        exported = {**data, "exportedAt": utc_now_iso(), "version": SNAPSHOT_VERSION}
        return json.dumps(exported, indent=2, ensure_ascii=False)

    def import_snapshot(self, text: str) -> bool:
        """Persist an exported snapshot.

        The input must be a JSON object with a ``tasks`` list. Anything else
        returns False and leaves storage untouched. In-memory state is not
        updated; reload from storage afterwards.
        """
        try:
            data = parse_json(text)
        except MalformedDataError as e:
            logger.warning("Failed to import data: %s", e)
            return False

        if not isinstance(data, dict) or not isinstance(data.get("tasks"), list):
            logger.warning("Failed to import data: expected an object with a tasks list")
            return False

        payload = {k: v for k, v in data.items() if k not in EXPORT_METADATA_KEYS}
        return self.save(payload)

    def storage_info(self) -> StorageInfo:
        try:
            raw = self.storage.get_item(self.key)
        except StorageError as e:
            return StorageInfo(used=0, quota=0, available=0, usage_percentage=0.0, error=str(e))

        used = len(raw.encode("utf-8")) if raw else 0
        return StorageInfo(
            used=used,
            quota=self.quota_bytes,
            available=self.quota_bytes - used,
            usage_percentage=used / self.quota_bytes * 100,
        )

    def is_available(self) -> bool:
        """Probe the store with a throwaway write and delete."""
        try:
            self.storage.set_item(_PROBE_KEY, _PROBE_KEY)
            self.storage.remove_item(_PROBE_KEY)
        except StorageError:
            return False
        return True

    def clear(self) -> bool:
        """Remove the persisted snapshot."""
        try:
            self.storage.remove_item(self.key)
        except StorageError as e:
            logger.warning("Failed to clear storage: %s", e)
            return False
        return True
