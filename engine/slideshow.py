"""
Cross-fade slideshow scheduling.

Two display layers ("A" and "B") alternate as foreground. The foreground
layer shows the active photo while the background layer already holds the
next one, so every transition fades to an image that has finished loading.

The scheduler is toolkit independent: timers come from a factory, the GUI
passes a QTimer-backed one.
"""

from typing import Callable, Optional, Protocol, Sequence

from loguru import logger

from .models import Photo


DEFAULT_INTERVAL_MS = 10000

LAYER_A = "A"
LAYER_B = "B"


class TimerHandle(Protocol):
    """A pending single-shot timer."""

    def cancel(self) -> None:
        ...


TimerFactory = Callable[[int, Callable[[], None]], TimerHandle]


class SlideshowScheduler:
    """
    Rotation state machine over an ordered photo list.

    State is (active_index, top_layer_is_a). At most one rotation timer is
    live at any time: every state change cancels the pending timer before
    arming a new one.
    """

    def __init__(
        self,
        timer_factory: TimerFactory,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        on_change: Optional[Callable[['SlideshowScheduler'], None]] = None,
    ):
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")
        self._timer_factory = timer_factory
        self.interval_ms = interval_ms
        self._on_change = on_change

        self._photos: tuple[Photo, ...] = ()
        self._active_index = 0
        self._top_layer_is_a = True
        self._timer: Optional[TimerHandle] = None
        self._loaded = False
        self._closed = False

    # ==================== State ====================

    @property
    def photos(self) -> tuple[Photo, ...]:
        return self._photos

    @property
    def active_index(self) -> int:
        return self._active_index

    @property
    def top_layer_is_a(self) -> bool:
        return self._top_layer_is_a

    @property
    def foreground_layer(self) -> str:
        return LAYER_A if self._top_layer_is_a else LAYER_B

    @property
    def loaded(self) -> bool:
        """Whether the first photo snapshot has arrived."""
        return self._loaded

    @property
    def is_rotating(self) -> bool:
        """Whether a rotation timer is currently armed."""
        return self._timer is not None

    @property
    def active_photo(self) -> Optional[Photo]:
        if not self._photos:
            return None
        return self._photos[self._active_index]

    @property
    def preload_photo(self) -> Optional[Photo]:
        """The photo after the active one, shown by the background layer."""
        if not self._photos:
            return None
        return self._photos[(self._active_index + 1) % len(self._photos)]

    def layer_photo(self, layer: str) -> Optional[Photo]:
        """Photo shown by layer "A" or "B" right now."""
        if layer not in (LAYER_A, LAYER_B):
            raise ValueError(f"Unknown layer: {layer!r}")
        if layer == self.foreground_layer:
            return self.active_photo
        return self.preload_photo

    # ==================== Transitions ====================

    def set_photos(self, photos: Sequence[Photo]) -> None:
        """
        Replace the photo list (a new store snapshot).

        Clamps the active index to the new length and restarts the timer.
        """
        self._photos = tuple(photos)
        self._loaded = True

        count = len(self._photos)
        if count == 0:
            self._active_index = 0
        elif self._active_index >= count:
            self._active_index = max(0, count - 1)

        self._reschedule()
        self._changed()

    def advance(self) -> None:
        """Move to the next photo and swap the foreground layer."""
        if self._closed or len(self._photos) <= 1:
            return
        self._active_index = (self._active_index + 1) % len(self._photos)
        self._top_layer_is_a = not self._top_layer_is_a
        self._reschedule()
        self._changed()

    def close(self) -> None:
        """Cancel the rotation timer for good (display teardown)."""
        self._closed = True
        self._cancel_timer()

    # ==================== Timer ====================

    def _on_timer(self) -> None:
        self._timer = None
        self.advance()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _reschedule(self) -> None:
        self._cancel_timer()
        if self._closed or not self._loaded or len(self._photos) <= 1:
            return
        self._timer = self._timer_factory(self.interval_ms, self._on_timer)

    def _changed(self) -> None:
        logger.debug(
            f"Slideshow: index={self._active_index}/{len(self._photos)} "
            f"foreground={self.foreground_layer}"
        )
        if self._on_change is not None:
            self._on_change(self)
