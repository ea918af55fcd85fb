"""
Slideshow stage: two stacked photo layers that cross-fade.

Layer state comes from SlideshowScheduler; this widget only renders it.
Image bytes are fetched through the caching image session on a background
worker so a slow network never blocks the display.
"""

from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlsplit
from urllib.request import url2pathname

import requests
from PySide6.QtWidgets import QWidget, QLabel, QStackedLayout, QGraphicsOpacityEffect, QSizePolicy
from PySide6.QtCore import Qt, QTimer, QPropertyAnimation, QEasingCurve
from PySide6.QtGui import QPixmap
from loguru import logger

from engine.models import Photo
from engine.slideshow import SlideshowScheduler, LAYER_A, LAYER_B

from .network_worker import NetworkWorker


FADE_MS = 1000


class QtTimerHandle:
    """Single-shot QTimer behind the scheduler's timer interface."""

    def __init__(self, parent, interval_ms: int, callback: Callable[[], None]):
        self._timer = QTimer(parent)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._fire)
        self._callback = callback
        self._timer.start(interval_ms)

    def _fire(self):
        self._timer.deleteLater()
        self._callback()

    def cancel(self) -> None:
        self._timer.stop()
        self._timer.deleteLater()


def qt_timer_factory(parent) -> Callable[[int, Callable[[], None]], QtTimerHandle]:
    """Timer factory for SlideshowScheduler backed by Qt's event loop."""
    return lambda interval_ms, callback: QtTimerHandle(parent, interval_ms, callback)


def load_image_bytes(session: requests.Session, url: str, timeout: float = 30) -> bytes:
    """
    Fetch image bytes for display.

    file:// URLs (local object storage) are read from disk; everything else
    goes through the session, and so through the image cache.
    """
    parts = urlsplit(url)
    if parts.scheme == "file":
        return Path(url2pathname(parts.path)).read_bytes()
    response = session.get(url, timeout=timeout)
    response.raise_for_status()
    return response.content


class PhotoLayer(QLabel):
    """One full-bleed photo layer."""

    def __init__(self, name: str, parent=None):
        super().__init__(parent)
        self.name = name
        self.url: Optional[str] = None
        self._pixmap: Optional[QPixmap] = None
        self.setAlignment(Qt.AlignCenter)
        self.setSizePolicy(QSizePolicy.Ignored, QSizePolicy.Ignored)
        self.setStyleSheet("background: black;")
        self.opacity = QGraphicsOpacityEffect(self)
        self.opacity.setOpacity(1.0)
        self.setGraphicsEffect(self.opacity)

    def show_pixmap(self, url: Optional[str], pixmap: Optional[QPixmap]):
        self.url = url
        self._pixmap = pixmap
        self._rescale()

    def _rescale(self):
        if self._pixmap is None or self._pixmap.isNull():
            self.clear()
            return
        self.setPixmap(self._pixmap.scaled(
            self.size(), Qt.KeepAspectRatioByExpanding, Qt.SmoothTransformation
        ))

    def resizeEvent(self, event):
        super().resizeEvent(event)
        self._rescale()


class PhotoStage(QWidget):
    """
    Slideshow display.

    The foreground layer fades in over the background one whenever the
    scheduler advances; the background layer then picks up the next photo.
    """

    def __init__(self, session: requests.Session, interval_ms: int, parent=None):
        super().__init__(parent)
        self._session = session
        self._worker = NetworkWorker(max_workers=2, parent=self)
        self._worker.operation_finished.connect(self._on_image_loaded)
        self._worker.operation_error.connect(self._on_image_error)

        self._layers = {LAYER_A: PhotoLayer(LAYER_A), LAYER_B: PhotoLayer(LAYER_B)}
        layout = QStackedLayout(self)
        layout.setStackingMode(QStackedLayout.StackAll)
        layout.setContentsMargins(0, 0, 0, 0)
        for layer in self._layers.values():
            layout.addWidget(layer)

        self._empty_label = QLabel("No photos yet", self)
        self._empty_label.setAlignment(Qt.AlignCenter)
        self._empty_label.setStyleSheet("color: white; font-size: 24pt; background: black;")
        layout.addWidget(self._empty_label)

        self._fade: Optional[QPropertyAnimation] = None
        self._foreground_name: Optional[str] = None

        self.scheduler = SlideshowScheduler(
            qt_timer_factory(self),
            interval_ms=interval_ms,
            on_change=self._on_scheduler_change,
        )

    def set_photos(self, photos: list[Photo]):
        """Show the displayable photos of a store snapshot, in order."""
        self.scheduler.set_photos([p for p in photos if p.is_displayable])

    def close_stage(self):
        """Stop rotation and background loads."""
        self.scheduler.close()
        if self._fade is not None:
            self._fade.stop()
        self._worker.shutdown(wait=False)

    # ==================== Rendering ====================

    def _on_scheduler_change(self, scheduler: SlideshowScheduler):
        if not scheduler.photos:
            self._empty_label.show()
            self._empty_label.raise_()
            for layer in self._layers.values():
                layer.show_pixmap(None, None)
            self._foreground_name = None
            return
        self._empty_label.hide()

        foreground = self._layers[scheduler.foreground_layer]
        background = self._layers[LAYER_B if scheduler.top_layer_is_a else LAYER_A]

        if self._foreground_name == foreground.name and foreground.url == scheduler.active_photo.image_url:
            # Same photo still in front (snapshot without a visible change)
            self._ensure_loaded(background, scheduler.preload_photo)
            return
        self._foreground_name = foreground.name

        self._ensure_loaded(foreground, scheduler.active_photo)
        foreground.raise_()
        self._fade_in(foreground, on_done=lambda: self._ensure_loaded(background, scheduler.preload_photo))

    def _fade_in(self, layer: PhotoLayer, on_done: Callable[[], None]):
        if self._fade is not None:
            self._fade.stop()
        layer.opacity.setOpacity(0.0)
        self._fade = QPropertyAnimation(layer.opacity, b"opacity", self)
        self._fade.setDuration(FADE_MS)
        self._fade.setStartValue(0.0)
        self._fade.setEndValue(1.0)
        self._fade.setEasingCurve(QEasingCurve.InOutQuad)
        self._fade.finished.connect(on_done)
        self._fade.start()

    def _ensure_loaded(self, layer: PhotoLayer, photo: Optional[Photo]):
        url = photo.image_url if photo else None
        if url == layer.url:
            return
        if url is None:
            layer.show_pixmap(None, None)
            return
        layer.url = url
        self._worker.submit_latest(layer.name, load_image_bytes, self._session, url)

    def _on_image_loaded(self, operation_id: str, data: bytes):
        if not self._worker.is_latest(operation_id):
            return
        layer = self._layers[operation_id.split(":", 1)[0]]
        pixmap = QPixmap()
        if not pixmap.loadFromData(data):
            logger.warning(f"Could not decode image for layer {layer.name}")
            return
        layer.show_pixmap(layer.url, pixmap)

    def _on_image_error(self, operation_id: str, error_message: str):
        if not self._worker.is_latest(operation_id):
            return
        layer = self._layers[operation_id.split(":", 1)[0]]
        logger.warning(f"Image load failed for layer {layer.name}: {error_message}")
        layer.url = None
