"""Error types raised by todosync."""

from __future__ import annotations


class TodoSyncError(Exception):
    """Base class for todosync errors."""


class TaskValidationError(TodoSyncError, ValueError):
    """Task text is empty or longer than the allowed maximum."""


class StorageError(TodoSyncError):
    """The durable store could not be read or written.

    Raised by storage backends. The persistence layer catches it and reports
    a boolean failure instead of propagating.
    """


class MalformedDataError(TodoSyncError):
    """Persisted, imported or broadcast data could not be parsed."""
