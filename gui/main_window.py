"""
Main Window for the photo kiosk.

Slideshow on the left, the month's events on the right, plus the overlays
(menu, photo manager, add event) reachable through the menu button.
"""

import base64
import json
from datetime import date
from typing import Optional

import requests
from PySide6.QtWidgets import (
    QMainWindow, QWidget, QVBoxLayout, QHBoxLayout, QStackedWidget,
    QPushButton, QLabel, QListWidget, QListWidgetItem, QFrame,
)
from PySide6.QtCore import Qt, Signal, QObject
from PySide6.QtGui import QCloseEvent, QFont, QKeyEvent
from loguru import logger

from engine.aggregator import CalendarFeed, EventAggregator
from engine.auth import AllowListGate
from engine.config import Config
from engine.document_store import Subscription
from engine.event_repository import EventRepository
from engine.holiday_generator import HolidayGenerator
from engine.image_cache import ImageCacheWorker, CACHE_IMAGES, CACHE_ERROR
from engine.models import DisplayEvent, Photo, calendar_date
from engine.overlay import Overlay, OverlayState
from engine.photo_library import PhotoLibrary
from engine.timezone_utils import utc_to_local_naive

from .event_dialog import EventDialog
from .photo_manager import PhotoManager
from .photo_stage import PhotoStage


class SnapshotBridge(QObject):
    """
    Moves store snapshots onto the GUI thread.

    Store listeners run on whichever thread wrote; emitting a signal queues
    the payload for the main thread.
    """
    slideshow_photos = Signal(object)
    managed_photos = Signal(object)
    display_events = Signal(object)


def display_sort_key(event: DisplayEvent) -> tuple:
    """Order for the event list: by day, all-day entries first, then time."""
    day = calendar_date(event.start, event.all_day)
    return (day, not event.all_day, event.start, event.title)


def format_event_line(event: DisplayEvent) -> str:
    day = calendar_date(event.start, event.all_day)
    if event.all_day:
        when = "All day"
    else:
        when = utc_to_local_naive(event.start).strftime("%H:%M")
    return f"{day.strftime('%a %d')}   {when:>7}   {event.title}"


class MainMenu(QFrame):
    """Menu overlay."""

    manage_photos = Signal()
    add_event = Signal()
    closed = Signal()

    def __init__(self, parent=None):
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.addStretch()
        for text, signal in (
            ("Manage Photos", self.manage_photos),
            ("Add Event", self.add_event),
            ("Close", self.closed),
        ):
            button = QPushButton(text)
            button.setMinimumHeight(56)
            button.clicked.connect(signal.emit)
            layout.addWidget(button)
        layout.addStretch()


class KioskWindow(QMainWindow):
    """
    Main kiosk window.

    Owns every live subscription it starts and cancels them in closeEvent.
    """

    signed_out = Signal()

    PAGE_KIOSK = 0
    PAGE_MENU = 1
    PAGE_PHOTOS = 2

    def __init__(
        self,
        config: Config,
        repository: EventRepository,
        library: PhotoLibrary,
        gate: AllowListGate,
        image_session: requests.Session,
        cache_worker: ImageCacheWorker,
        parent=None,
    ):
        super().__init__(parent)
        self.config = config
        self._repository = repository
        self._library = library
        self._gate = gate
        self._image_session = image_session
        self._cache_worker = cache_worker

        self._state_file = config.state_file
        self._ui_state: dict = {}
        self._subscriptions: list[Subscription] = []
        self._event_dialogs: list[EventDialog] = []
        self._pinned_urls: tuple[str, ...] = ()
        self._visible_day = date.today()

        self._bridge = SnapshotBridge(self)
        self._overlay = OverlayState(on_change=self._on_overlay_changed)

        self._setup_window()
        self._setup_ui()
        self._start_feeds()

    # ==================== Setup ====================

    def _setup_window(self):
        self.setWindowTitle("Photo Kiosk")
        self.setMinimumSize(800, 480)
        self._load_ui_state()
        geometry = self._ui_state.get("geometry")
        if geometry:
            self.restoreGeometry(base64.b64decode(geometry))
        else:
            self.resize(1280, 800)

    def _setup_ui(self):
        self._pages = QStackedWidget()

        # Kiosk page: slideshow + event list
        kiosk = QWidget()
        kiosk_layout = QHBoxLayout(kiosk)
        kiosk_layout.setContentsMargins(0, 0, 0, 0)
        kiosk_layout.setSpacing(0)

        self._stage = PhotoStage(self._image_session, self.config.slideshow.interval_ms)
        kiosk_layout.addWidget(self._stage, 2)

        panel = QWidget()
        panel_layout = QVBoxLayout(panel)
        header = QHBoxLayout()
        self._prev_btn = QPushButton("<")
        self._prev_btn.clicked.connect(lambda: self._shift_month(-1))
        header.addWidget(self._prev_btn)
        self._month_label = QLabel()
        self._month_label.setAlignment(Qt.AlignCenter)
        font = QFont()
        font.setPointSize(16)
        font.setBold(True)
        self._month_label.setFont(font)
        header.addWidget(self._month_label, 1)
        self._next_btn = QPushButton(">")
        self._next_btn.clicked.connect(lambda: self._shift_month(1))
        header.addWidget(self._next_btn)
        self._menu_btn = QPushButton("Menu")
        self._menu_btn.clicked.connect(lambda: self._overlay.open(Overlay.MENU))
        header.addWidget(self._menu_btn)
        panel_layout.addLayout(header)

        self._event_list = QListWidget()
        self._event_list.itemDoubleClicked.connect(self._on_event_double_clicked)
        panel_layout.addWidget(self._event_list, 1)
        kiosk_layout.addWidget(panel, 1)

        self._pages.addWidget(kiosk)

        self._menu = MainMenu()
        self._menu.manage_photos.connect(lambda: self._overlay.open(Overlay.PHOTO_MANAGER))
        self._menu.add_event.connect(lambda: self._overlay.open(Overlay.ADD_EVENT))
        self._menu.closed.connect(self._overlay.close)
        self._pages.addWidget(self._menu)

        self._photo_manager = PhotoManager(self._library, self._image_session)
        self._photo_manager.closed.connect(self._overlay.close)
        self._pages.addWidget(self._photo_manager)

        self.setCentralWidget(self._pages)
        self._update_month_label()

    def _start_feeds(self):
        self._bridge.slideshow_photos.connect(self._on_slideshow_photos)
        self._bridge.managed_photos.connect(self._photo_manager.set_photos)
        self._bridge.display_events.connect(self._render_events)

        aggregator = EventAggregator(HolidayGenerator(
            country=self.config.holidays.country,
            subdivision=self.config.holidays.subdivision,
            denylist=self.config.holidays.denylist,
        ))
        self._feed = CalendarFeed(
            self._repository,
            aggregator,
            on_change=self._bridge.display_events.emit,
            visible_day=self._visible_day,
        )
        self._feed.start()

        self._subscriptions.append(
            self._library.subscribe(self._bridge.slideshow_photos.emit, newest_first=False)
        )
        self._subscriptions.append(
            self._library.subscribe(self._bridge.managed_photos.emit, newest_first=True)
        )
        self._subscriptions.append(self._cache_worker.add_client(self._on_cache_reply))

    # ==================== State persistence ====================

    def _load_ui_state(self):
        """Load UI state from the JSON state file."""
        self._ui_state = {}
        if self._state_file.exists():
            try:
                with open(self._state_file, 'r', encoding='utf-8') as f:
                    self._ui_state = json.load(f).get('ui', {})
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Error loading UI state: {e}")

    def _save_ui_state(self):
        """Save UI state to the JSON state file, keeping other entries."""
        self._ui_state["geometry"] = base64.b64encode(self.saveGeometry().data()).decode('utf-8')
        try:
            existing_state = {}
            if self._state_file.exists():
                with open(self._state_file, 'r', encoding='utf-8') as f:
                    existing_state = json.load(f)
            existing_state['ui'] = self._ui_state
            self._state_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self._state_file, 'w', encoding='utf-8') as f:
                json.dump(existing_state, f, indent=2)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error saving UI state: {e}")

    # ==================== Photos ====================

    def _on_slideshow_photos(self, photos: list[Photo]):
        self._stage.set_photos(photos)
        self._pin_photos(photos)

    def _pin_photos(self, photos: list[Photo]):
        """Ask the cache worker to keep every displayable remote image offline."""
        urls = tuple(
            p.image_url for p in photos
            if p.is_displayable and p.image_url.startswith(("http://", "https://"))
        )
        if not urls or urls == self._pinned_urls:
            return
        self._pinned_urls = urls
        self._cache_worker.post_message({"type": CACHE_IMAGES, "payload": list(urls)})

    def _on_cache_reply(self, message: dict):
        if message.get("type") == CACHE_ERROR:
            logger.warning(f"Images not cached for offline use: {message.get('failedUrls')}")
        else:
            logger.info("All slideshow images cached for offline use")

    # ==================== Calendar ====================

    def _shift_month(self, delta: int):
        month_index = self._visible_day.year * 12 + self._visible_day.month - 1 + delta
        self._visible_day = date(month_index // 12, month_index % 12 + 1, 1)
        self._update_month_label()
        self._feed.show_month(self._visible_day)

    def _update_month_label(self):
        self._month_label.setText(self._visible_day.strftime("%B %Y"))

    def _render_events(self, events: list[DisplayEvent]):
        self._event_list.clear()
        for event in sorted(events, key=display_sort_key):
            item = QListWidgetItem(format_event_line(event))
            item.setData(Qt.UserRole, event)
            if event.is_holiday:
                font = item.font()
                font.setItalic(True)
                item.setFont(font)
                item.setFlags(item.flags() & ~Qt.ItemIsSelectable)
            self._event_list.addItem(item)

    def _on_event_double_clicked(self, item: QListWidgetItem):
        event = item.data(Qt.UserRole)
        if event is None or event.is_holiday:
            return
        self._open_event_dialog(event)

    def _open_event_dialog(self, event: Optional[DisplayEvent] = None):
        dialog = EventDialog(self._repository, self._state_file, event=event)
        dialog.closed.connect(lambda d=dialog: self._on_event_dialog_closed(d))
        self._event_dialogs.append(dialog)
        dialog.show()
        dialog.raise_()
        dialog.activateWindow()

    def _on_event_dialog_closed(self, dialog: EventDialog):
        if dialog in self._event_dialogs:
            self._event_dialogs.remove(dialog)
        if self._overlay.current == Overlay.ADD_EVENT:
            self._overlay.close()

    # ==================== Overlays ====================

    def _on_overlay_changed(self, overlay: Overlay):
        self._menu_btn.setVisible(self._overlay.show_menu_button)
        if overlay == Overlay.MENU:
            self._pages.setCurrentIndex(self.PAGE_MENU)
        elif overlay == Overlay.PHOTO_MANAGER:
            self._pages.setCurrentIndex(self.PAGE_PHOTOS)
        else:
            self._pages.setCurrentIndex(self.PAGE_KIOSK)
        if overlay == Overlay.ADD_EVENT:
            self._open_event_dialog()

    # ==================== Keys / teardown ====================

    def keyPressEvent(self, event: QKeyEvent):
        key = event.key()
        if key == Qt.Key_Escape:
            self._gate.sign_out()
            self.close()
            self.signed_out.emit()
        elif key == Qt.Key_Left and not self._overlay.is_open:
            self._shift_month(-1)
        elif key == Qt.Key_Right and not self._overlay.is_open:
            self._shift_month(1)
        else:
            super().keyPressEvent(event)

    def closeEvent(self, event: QCloseEvent):
        """Tear down every timer and subscription this window started."""
        for dialog in self._event_dialogs[:]:
            dialog.close()
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions.clear()
        self._feed.close()
        self._stage.close_stage()
        self._photo_manager.shutdown()
        self._save_ui_state()
        super().closeEvent(event)
