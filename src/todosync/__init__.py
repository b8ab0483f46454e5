"""todosync - a local-first task list with cross-process sync."""

__version__ = "0.1.0"
