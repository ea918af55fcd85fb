"""
Which overlay covers the kiosk display.

At most one overlay is open at a time; opening one replaces the other. The
menu button is shown only while nothing is open.
"""

from enum import Enum
from typing import Callable, Optional


class Overlay(str, Enum):
    NONE = "none"
    MENU = "menu"
    PHOTO_MANAGER = "photoManager"
    ADD_EVENT = "addEvent"


class OverlayState:
    """Single-valued overlay state with a change listener."""

    def __init__(self, on_change: Optional[Callable[[Overlay], None]] = None):
        self._current = Overlay.NONE
        self._on_change = on_change

    @property
    def current(self) -> Overlay:
        return self._current

    @property
    def is_open(self) -> bool:
        return self._current != Overlay.NONE

    @property
    def show_menu_button(self) -> bool:
        return not self.is_open

    def open(self, overlay: Overlay) -> None:
        """Open an overlay, closing whichever was open."""
        overlay = Overlay(overlay)
        if overlay == self._current:
            return
        self._current = overlay
        if self._on_change is not None:
            self._on_change(overlay)

    def close(self) -> None:
        self.open(Overlay.NONE)
