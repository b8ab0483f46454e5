"""Data models for todosync.

Python attributes are snake_case; the persisted JSON uses the camelCase
aliases (``createdAt``, ``nextTaskId``, ...) so snapshots stay readable by
every process sharing the storage directory.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

FilterType = Literal["all", "pending", "completed"]
SortBy = Literal["created", "updated", "text", "status"]
SortOrder = Literal["asc", "desc"]

FILTER_OPTIONS: tuple[str, ...] = ("all", "pending", "completed")
SORT_OPTIONS: tuple[str, ...] = ("created", "updated", "text", "status")
SORT_ORDERS: tuple[str, ...] = ("asc", "desc")

# Human labels, used for filter descriptions and the CLI
FILTER_LABELS = {"all": "All", "pending": "Pending", "completed": "Completed"}
SORT_LABELS = {
    "created": "Date Created",
    "updated": "Last Updated",
    "text": "Alphabetical",
    "status": "Completion Status",
}

MAX_TEXT_LENGTH = 200
SNAPSHOT_VERSION = "1.0"


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return now.replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp, returning None if it is missing or invalid.

    Naive timestamps are treated as UTC so that comparisons never mix aware
    and naive datetimes.
    """
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class WireModel(BaseModel):
    """Base model serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump to a JSON-compatible dict using the persisted key names."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class Task(WireModel):
    """A single to-do item."""

    id: int
    text: str
    completed: bool = False
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)

    def touch(self) -> None:
        """Refresh updated_at after a mutation."""
        self.updated_at = utc_now_iso()


class FilterState(WireModel):
    """The user's current filter, search and sort selection."""

    current_filter: FilterType = "all"
    search_query: str = ""
    sort_by: SortBy = "created"
    sort_order: SortOrder = "asc"


class ThemeState(WireModel):
    """Persisted theme flags."""

    is_dark_mode: bool = False
    has_manual_preference: bool = False


class Snapshot(WireModel):
    """The full persisted state, written and read as one JSON object."""

    tasks: list[Task] = Field(default_factory=list)
    next_task_id: int = 1
    filters: FilterState | None = None
    theme: ThemeState | None = None
    version: str | None = SNAPSHOT_VERSION
    last_updated: str | None = None
