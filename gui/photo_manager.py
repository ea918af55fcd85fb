"""
Photo manager overlay: upload new photos and bulk-delete old ones.

The grid mirrors the photo store newest-first. Uploads and deletions run on
a background worker; the grid only changes when the next store snapshot
arrives.
"""

from pathlib import Path

import requests
from PySide6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QListWidget, QListWidgetItem,
    QPushButton, QLabel, QFileDialog, QMessageBox, QListView,
)
from PySide6.QtCore import Qt, Signal, QSize
from PySide6.QtGui import QPixmap, QIcon
from loguru import logger

from engine.models import Photo, PhotoStatus
from engine.photo_library import PhotoLibrary, summarize_failures

from .event_dialog import confirm_with_user
from .network_worker import NetworkWorker
from .photo_stage import load_image_bytes


THUMBNAIL_SIZE = QSize(160, 144)

IMAGE_FILTER = "Images (*.jpg *.jpeg *.png *.webp *.heic *.gif *.bmp *.tif *.tiff)"


class PhotoManager(QWidget):
    """Management grid of all photos."""

    closed = Signal()

    def __init__(self, library: PhotoLibrary, session: requests.Session, parent=None):
        super().__init__(parent)
        self._library = library
        self._session = session
        self._photos: dict[str, Photo] = {}
        self._thumbnails: dict[str, QPixmap] = {}

        self._worker = NetworkWorker(max_workers=3, parent=self)
        self._worker.operation_finished.connect(self._on_operation_finished)
        self._worker.operation_error.connect(self._on_operation_error)

        self._setup_ui()

    def _setup_ui(self):
        layout = QVBoxLayout(self)
        layout.setContentsMargins(16, 16, 16, 16)

        header = QHBoxLayout()
        title = QLabel("Manage Photos")
        title.setStyleSheet("font-size: 18pt; font-weight: bold;")
        header.addWidget(title)
        header.addStretch()
        self._close_btn = QPushButton("Close")
        self._close_btn.clicked.connect(self.closed.emit)
        header.addWidget(self._close_btn)
        layout.addLayout(header)

        self._grid = QListWidget()
        self._grid.setViewMode(QListView.IconMode)
        self._grid.setIconSize(THUMBNAIL_SIZE)
        self._grid.setResizeMode(QListView.Adjust)
        self._grid.setSelectionMode(QListWidget.MultiSelection)
        self._grid.setSpacing(8)
        self._grid.itemSelectionChanged.connect(self._update_buttons)
        layout.addWidget(self._grid, 1)

        buttons = QHBoxLayout()
        self._status_label = QLabel("")
        buttons.addWidget(self._status_label, 1)
        self._upload_btn = QPushButton("Upload Photos...")
        self._upload_btn.clicked.connect(self._on_upload)
        buttons.addWidget(self._upload_btn)
        self._delete_btn = QPushButton("Delete Selected")
        self._delete_btn.clicked.connect(self._on_delete_selected)
        buttons.addWidget(self._delete_btn)
        layout.addLayout(buttons)

        self._update_buttons()

    # ==================== Snapshot ====================

    def set_photos(self, photos: list[Photo]):
        """Rebuild the grid from a newest-first snapshot, keeping the selection."""
        selected = {item.data(Qt.UserRole) for item in self._grid.selectedItems()}
        self._photos = {p.id: p for p in photos}
        self._grid.clear()
        for photo in photos:
            item = QListWidgetItem(self._caption(photo))
            item.setData(Qt.UserRole, photo.id)
            item.setSizeHint(THUMBNAIL_SIZE + QSize(16, 40))
            pixmap = self._thumbnails.get(photo.id)
            if pixmap is not None:
                item.setIcon(QIcon(pixmap))
            elif photo.is_displayable and not self._worker.is_pending(f"thumb:{photo.id}"):
                self._worker.submit(f"thumb:{photo.id}", load_image_bytes, self._session, photo.image_url)
            self._grid.addItem(item)
            item.setSelected(photo.id in selected)
        self._update_buttons()

    @staticmethod
    def _caption(photo: Photo) -> str:
        if photo.status == PhotoStatus.UPLOADING:
            return f"{photo.file_name}\n(processing...)"
        if photo.status == PhotoStatus.ERROR:
            return f"{photo.file_name}\n(failed)"
        return photo.file_name

    def _selected_photos(self) -> list[Photo]:
        ids = [item.data(Qt.UserRole) for item in self._grid.selectedItems()]
        return [self._photos[i] for i in ids if i in self._photos]

    def _update_buttons(self):
        count = len(self._grid.selectedItems())
        self._delete_btn.setEnabled(count > 0)
        self._delete_btn.setText(f"Delete Selected ({count})" if count else "Delete Selected")

    # ==================== Actions ====================

    def _on_upload(self):
        files, _ = QFileDialog.getOpenFileNames(self, "Upload Photos", str(Path.home()), IMAGE_FILTER)
        if not files:
            return
        self._status_label.setText(f"Uploading {len(files)} photo(s), please wait...")
        self._upload_btn.setEnabled(False)
        self._worker.submit("upload", self._library.upload_photos, [Path(f) for f in files])

    def _on_delete_selected(self):
        photos = self._selected_photos()
        if not photos:
            return
        confirm = confirm_with_user(self, "Delete Photos")
        if not confirm(f"Are you sure you want to delete {len(photos)} selected photos?"):
            return
        self._grid.clearSelection()
        self._status_label.setText("Deleting...")
        # Already confirmed once for the whole batch
        self._worker.submit("delete", self._library.delete_photos, photos)

    def _on_operation_finished(self, operation_id: str, result):
        if operation_id.startswith("thumb:"):
            photo_id = operation_id.split(":", 1)[1]
            pixmap = QPixmap()
            if pixmap.loadFromData(result):
                pixmap = pixmap.scaled(THUMBNAIL_SIZE, Qt.KeepAspectRatio, Qt.SmoothTransformation)
                self._thumbnails[photo_id] = pixmap
                self._set_icon(photo_id, pixmap)
            return

        if operation_id == "upload":
            self._upload_btn.setEnabled(True)
            if result:
                self._status_label.setText("")
                QMessageBox.warning(self, "Upload", "\n".join(result))
            else:
                self._status_label.setText("Upload successful!")
        elif operation_id == "delete":
            self._status_label.setText("")
            if result:
                QMessageBox.warning(self, "Delete Photos", summarize_failures(result))

    def _on_operation_error(self, operation_id: str, error_message: str):
        if operation_id.startswith("thumb:"):
            logger.debug(f"Thumbnail load failed: {error_message}")
            return
        self._upload_btn.setEnabled(True)
        self._status_label.setText(f"Error: {error_message}")

    def _set_icon(self, photo_id: str, pixmap: QPixmap):
        for row in range(self._grid.count()):
            item = self._grid.item(row)
            if item.data(Qt.UserRole) == photo_id:
                item.setIcon(QIcon(pixmap))
                break

    def shutdown(self):
        self._worker.shutdown(wait=False)
