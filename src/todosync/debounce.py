"""Debounce a callback on the asyncio event loop."""

from __future__ import annotations

import asyncio
from collections.abc import Callable


class Debouncer:
    """Runs ``callback`` once, ``delay`` seconds after the last trigger.

    Each trigger restarts the quiet period. Without a running event loop (or
    with a zero delay) the callback runs immediately.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], None],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.delay = delay
        self._callback = callback
        self._loop = loop
        self._handle: asyncio.TimerHandle | None = None

    def _resolve_loop(self) -> asyncio.AbstractEventLoop | None:
        if self._loop is not None and not self._loop.is_closed():
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def trigger(self) -> None:
        self.cancel()
        loop = self._resolve_loop()
        if self.delay <= 0 or loop is None:
            self._callback()
            return
        self._handle = loop.call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self._callback()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def cancel(self) -> None:
        """Drop any scheduled call."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def flush(self) -> bool:
        """Run a scheduled call now. Returns False if nothing was pending."""
        if not self.pending:
            return False
        self.cancel()
        self._callback()
        return True
