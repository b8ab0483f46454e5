"""Minimal change-notification support shared by the stateful components."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Change:
    """A notification that some observed state changed.

    Attributes:
        source: Name of the component that changed (e.g. "tasks").
        deep: True when a nested item was mutated in place, False when a
            top-level value was replaced.
    """

    source: str
    deep: bool = False


Listener = Callable[[Change], None]


class Observable:
    """Mixin holding a list of change listeners."""

    change_source = "state"

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, deep: bool = False) -> None:
        change = Change(source=self.change_source, deep=deep)
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            listener(change)
