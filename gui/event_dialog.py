"""
Event Dialog for creating and editing calendar events.

This is an independent window (not a modal dialog) for editing event details.
Edits overwrite the whole stored record; the calendar refreshes from the next
store snapshot, never from the dialog.
"""

import base64
import json
from datetime import datetime, timedelta, time as dt_time
from pathlib import Path
from typing import Optional

from PySide6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QFormLayout,
    QLineEdit, QDateTimeEdit, QDateEdit, QCheckBox,
    QComboBox, QPushButton, QMessageBox,
)
from PySide6.QtCore import Qt, Signal, QDateTime, QDate
from PySide6.QtGui import QCloseEvent
from loguru import logger

from engine.event_repository import EventRepository, delete_confirmation_message
from engine.models import Event, EventValidationError, Recurrence, calendar_date
from engine.timezone_utils import utc_to_local_naive, local_naive_to_utc


RECURRENCE_LABELS = [
    (Recurrence.NONE, "Does not repeat"),
    (Recurrence.DAILY, "Daily"),
    (Recurrence.WEEKLY, "Weekly"),
    (Recurrence.MONTHLY, "Monthly"),
    (Recurrence.YEARLY, "Yearly"),
]


def confirm_with_user(parent: QWidget, title: str):
    """Build a confirm(message) callback backed by a Yes/No message box."""
    def _confirm(message: str) -> bool:
        result = QMessageBox.question(
            parent, title, message,
            QMessageBox.Yes | QMessageBox.No, QMessageBox.No,
        )
        return result == QMessageBox.Yes
    return _confirm


class EventDialog(QWidget):
    """Independent window for creating/editing calendar events."""

    event_saved = Signal(str)
    event_deleted = Signal(str)
    closed = Signal()

    def __init__(self, repository: EventRepository, state_file: Path,
                 event: Optional[Event] = None,
                 initial_datetime: Optional[datetime] = None, parent=None):
        super().__init__(parent)
        self.repository = repository
        # Occurrences are edited through their source event
        self.event = getattr(event, "event", event)
        self.is_new = self.event is None
        self.initial_datetime = initial_datetime or datetime.now()
        self._state_file = Path(state_file)

        self._setup_window()
        self._setup_ui()
        self._populate_data()

    def _setup_window(self):
        if self.is_new:
            self.setWindowTitle("New Event")
        else:
            self.setWindowTitle(f"Edit Event: {self.event.title}")
        self.setWindowFlags(Qt.Window)
        self.setAttribute(Qt.WA_DeleteOnClose)
        self.setMinimumSize(400, 300)

        self._dialog_state = self._load_dialog_state()
        geometry = self._dialog_state.get("event_dialog_geometry")
        if geometry:
            self.restoreGeometry(base64.b64decode(geometry))
        else:
            self.resize(480, 360)

    def _load_dialog_state(self) -> dict:
        """Load dialog state from the JSON state file."""
        if self._state_file.exists():
            try:
                with open(self._state_file, 'r', encoding='utf-8') as f:
                    return json.load(f).get('event_dialog', {})
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Could not read dialog state: {e}")
        return {}

    def _save_dialog_state(self):
        """Save dialog state to the JSON state file, keeping other entries."""
        try:
            existing_state = {}
            if self._state_file.exists():
                with open(self._state_file, 'r', encoding='utf-8') as f:
                    existing_state = json.load(f)
            existing_state['event_dialog'] = self._dialog_state
            self._state_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self._state_file, 'w', encoding='utf-8') as f:
                json.dump(existing_state, f, indent=2)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error saving dialog state: {e}")

    def _setup_ui(self):
        layout = QVBoxLayout(self)
        layout.setSpacing(8)
        layout.setContentsMargins(8, 8, 8, 8)

        form = QFormLayout()
        form.setSpacing(8)

        self._title_edit = QLineEdit()
        self._title_edit.setPlaceholderText("Event title")
        form.addRow("Title:", self._title_edit)

        self._all_day_check = QCheckBox("All day")
        self._all_day_check.stateChanged.connect(self._on_all_day_changed)
        form.addRow("", self._all_day_check)

        self._start_edit = QDateTimeEdit()
        self._start_edit.setCalendarPopup(True)
        self._start_edit.setDisplayFormat("yyyy-MM-dd HH:mm")
        self._start_edit.dateTimeChanged.connect(self._on_start_changed)
        form.addRow("Start:", self._start_edit)

        self._end_edit = QDateTimeEdit()
        self._end_edit.setCalendarPopup(True)
        self._end_edit.setDisplayFormat("yyyy-MM-dd HH:mm")
        form.addRow("End:", self._end_edit)

        self._recurrence_combo = QComboBox()
        for recurrence, label in RECURRENCE_LABELS:
            self._recurrence_combo.addItem(label, recurrence.value)
        self._recurrence_combo.currentIndexChanged.connect(self._on_recurrence_changed)
        form.addRow("Repeat:", self._recurrence_combo)

        self._until_check = QCheckBox("Until")
        self._until_edit = QDateEdit()
        self._until_edit.setCalendarPopup(True)
        self._until_edit.setDisplayFormat("yyyy-MM-dd")
        self._until_edit.setDate(QDate.currentDate().addMonths(3))
        self._until_check.toggled.connect(self._until_edit.setEnabled)
        until_row = QHBoxLayout()
        until_row.addWidget(self._until_check)
        until_row.addWidget(self._until_edit, 1)
        form.addRow("Ends:", until_row)

        layout.addLayout(form)
        layout.addStretch()

        button_layout = QHBoxLayout()
        if not self.is_new:
            self._delete_btn = QPushButton("Delete")
            self._delete_btn.clicked.connect(self._on_delete)
            button_layout.addWidget(self._delete_btn)
        button_layout.addStretch()

        self._cancel_btn = QPushButton("Cancel")
        self._cancel_btn.clicked.connect(self.close)
        button_layout.addWidget(self._cancel_btn)

        self._save_btn = QPushButton("Save")
        self._save_btn.clicked.connect(self._on_save)
        self._save_btn.setDefault(True)
        button_layout.addWidget(self._save_btn)
        layout.addLayout(button_layout)

    def _populate_data(self):
        if self.event:
            self._title_edit.setText(self.event.title)
            self._all_day_check.setChecked(self.event.all_day)
            if self.event.all_day:
                day = calendar_date(self.event.start, all_day=True)
                start_local = end_local = datetime.combine(day, dt_time())
            else:
                start_local = utc_to_local_naive(self.event.start)
                end_local = utc_to_local_naive(self.event.end)
            self._start_edit.setDateTime(QDateTime(start_local))
            self._end_edit.setDateTime(QDateTime(end_local))
            index = self._recurrence_combo.findData(self.event.recurrence.value)
            self._recurrence_combo.setCurrentIndex(max(index, 0))
            if self.event.until is not None:
                self._until_check.setChecked(True)
                self._until_edit.setDate(QDate(calendar_date(self.event.until, True)))
        else:
            start = self.initial_datetime
            if start.tzinfo:
                start = start.replace(tzinfo=None)
            minutes = (start.minute // 30) * 30
            start = start.replace(minute=minutes, second=0, microsecond=0)
            self._start_edit.setDateTime(QDateTime(start))
            self._end_edit.setDateTime(QDateTime(start + timedelta(hours=1)))
        self._on_recurrence_changed()

    def _on_all_day_changed(self, state: int):
        is_all_day = Qt.CheckState(state) == Qt.Checked
        self._start_edit.setDisplayFormat("yyyy-MM-dd" if is_all_day else "yyyy-MM-dd HH:mm")
        # All-day events are a single date
        self._end_edit.setEnabled(not is_all_day)

    def _on_recurrence_changed(self, *_):
        repeating = self._recurrence_combo.currentData() != Recurrence.NONE.value
        self._until_check.setEnabled(repeating)
        self._until_edit.setEnabled(repeating and self._until_check.isChecked())

    def _on_start_changed(self, dt: QDateTime):
        if self._end_edit.dateTime() < dt:
            self._end_edit.setDateTime(dt.addSecs(3600))

    def _form_values(self) -> dict:
        all_day = self._all_day_check.isChecked()
        start_local = self._start_edit.dateTime().toPython()
        end_local = self._end_edit.dateTime().toPython()
        recurrence = self._recurrence_combo.currentData()
        until = None
        if recurrence != Recurrence.NONE.value and self._until_check.isChecked():
            until = self._until_edit.date().toPython()

        if all_day:
            start = end = start_local.date()
        else:
            start = local_naive_to_utc(start_local)
            end = local_naive_to_utc(end_local)
        return {
            "title": self._title_edit.text(),
            "start": start,
            "end": end,
            "all_day": all_day,
            "recurrence": recurrence,
            "until": until,
        }

    def _on_save(self):
        values = self._form_values()
        try:
            if self.is_new:
                event_id = self.repository.create_event(**values)
                ok = event_id is not None
            else:
                event_id = self.event.id
                ok = self.repository.update_event(event_id, **values)
        except EventValidationError as e:
            QMessageBox.warning(self, "Validation Error", str(e))
            self._title_edit.setFocus()
            return

        if ok:
            self.event_saved.emit(event_id)
            self.close()
        else:
            QMessageBox.critical(self, "Error", "Failed to save event.")

    def _on_delete(self):
        if self.event is None:
            return
        confirm = confirm_with_user(self, "Delete Event")
        if not confirm(delete_confirmation_message(self.event)):
            return
        if self.repository.delete_event(self.event):
            self.event_deleted.emit(self.event.id)
            self.close()
        else:
            QMessageBox.critical(self, "Error", "Failed to delete event.")

    def closeEvent(self, close_event: QCloseEvent):
        self._dialog_state["event_dialog_geometry"] = base64.b64encode(
            self.saveGeometry().data()
        ).decode('utf-8')
        self._save_dialog_state()
        self.closed.emit()
        super().closeEvent(close_event)
