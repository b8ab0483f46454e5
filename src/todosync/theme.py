"""Theme state: dark mode flag and whether the user chose it explicitly.

Rendering the theme is the UI's job. This module only tracks the flags that
are persisted and synchronised between processes.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from todosync.models import ThemeState
from todosync.observable import Observable


@dataclass(frozen=True)
class SystemPreferences:
    """Read-only signals supplied by the host environment."""

    prefers_dark: bool = False
    reduced_motion: bool = False


@dataclass(frozen=True)
class ThemeInfo:
    is_dark: bool
    mode: Literal["dark", "light", "auto"]
    system_prefers_dark: bool


class ThemeController(Observable):
    """Tracks the dark mode flag and the manual-override flag."""

    change_source = "theme"

    def __init__(self, system: SystemPreferences | None = None) -> None:
        super().__init__()
        self.system = system or SystemPreferences()
        self.is_dark_mode = self.system.prefers_dark
        self.has_manual_preference = False

    def _apply(self, dark: bool, manual: bool) -> None:
        if (dark, manual) == (self.is_dark_mode, self.has_manual_preference):
            return
        self.is_dark_mode = dark
        self.has_manual_preference = manual
        self._notify()

    def set_theme(self, dark: bool) -> None:
        """Set the theme explicitly; it now overrides the system preference."""
        self._apply(bool(dark), True)

    def toggle_theme(self) -> None:
        self.set_theme(not self.is_dark_mode)

    def use_system_preference(self) -> None:
        """Drop any manual choice and follow the system preference."""
        self._apply(self.system.prefers_dark, False)

    def update_system_preference(self, prefers_dark: bool) -> None:
        """React to a change of the system signal.

        The visible theme follows only when the user has not chosen one.
        """
        self.system = SystemPreferences(
            prefers_dark=prefers_dark, reduced_motion=self.system.reduced_motion
        )
        if not self.has_manual_preference:
            self._apply(prefers_dark, False)

    def apply_remote(self, dark: bool) -> bool:
        """Apply a theme flag broadcast by another process.

        Ignored when this process has a manual preference. The manual flag is
        left untouched so the local process keeps following broadcasts.
        """
        if self.has_manual_preference:
            return False
        self._apply(bool(dark), False)
        return True

    def initialize_from_data(self, data: Mapping[str, Any] | None) -> None:
        """Restore from a persisted snapshot (nested ``theme`` or legacy flat keys)."""
        theme = data.get("theme") if data else None
        source = theme if isinstance(theme, Mapping) else (data or {})
        dark = source.get("isDarkMode")
        if not isinstance(dark, bool):
            self.use_system_preference()
            return

        manual = source.get("hasManualPreference", True)
        if manual is False:
            self.use_system_preference()
        else:
            self._apply(dark, True)

    def get_state(self) -> ThemeState:
        return ThemeState(
            is_dark_mode=self.is_dark_mode,
            has_manual_preference=self.has_manual_preference,
        )

    @property
    def info(self) -> ThemeInfo:
        if self.has_manual_preference:
            mode: Literal["dark", "light", "auto"] = "dark" if self.is_dark_mode else "light"
        else:
            mode = "auto"
        return ThemeInfo(
            is_dark=self.is_dark_mode,
            mode=mode,
            system_prefers_dark=self.system.prefers_dark,
        )

    @property
    def accessibility_info(self) -> dict[str, Any]:
        return {"reduced_motion": self.system.reduced_motion, "theme": self.info}
