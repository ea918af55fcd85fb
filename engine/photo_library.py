"""
Photo library: upload, listing and deletion of kiosk photos.

A photo goes through three states. A placeholder record is written first
("uploading"), then the raw file is uploaded to raw-uploads/<id><ext> where
the processing step picks it up and marks the record "complete" (or
"error"). Only complete photos reach the slideshow.
"""

import mimetypes
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional

from PIL import Image, ExifTags
from loguru import logger

from .document_store import DocumentStore, SERVER_TIMESTAMP, Subscription
from .image_processing import PHOTOS_COLLECTION
from .models import Photo, PhotoStatus
from .object_storage import ObjectStorage, RAW_UPLOADS_PREFIX
from .timezone_utils import local_naive_to_utc


ConfirmCallback = Callable[[str], bool]

_EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"


class PhotoDeleteError(Exception):
    """Raised when a single photo could not be deleted."""


@dataclass(frozen=True)
class ExifData:
    """Capture metadata read from a photo file."""
    date_taken: Optional[datetime] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None


def _exif_text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip().strip("\x00")
    return text or None


def read_exif(path: Path) -> ExifData:
    """
    Read capture date and camera from a photo's EXIF data.

    The EXIF timestamp ("YYYY:MM:DD HH:MM:SS") has no zone and is read as
    local time. Unreadable files or missing tags give empty fields.
    """
    try:
        with Image.open(path) as im:
            exif = im.getexif()
            if not exif:
                return ExifData()
            sub_ifd = exif.get_ifd(ExifTags.IFD.Exif)
            raw_date = (
                sub_ifd.get(ExifTags.Base.DateTimeOriginal)
                or exif.get(ExifTags.Base.DateTime)
            )
            make = _exif_text(exif.get(ExifTags.Base.Make))
            model = _exif_text(exif.get(ExifTags.Base.Model))
    except (OSError, ValueError) as e:
        logger.debug(f"EXIF read failed for {path}: {e}")
        return ExifData()

    date_taken = None
    raw_date = _exif_text(raw_date)
    if raw_date:
        try:
            date_taken = local_naive_to_utc(datetime.strptime(raw_date[:19], _EXIF_DATETIME_FORMAT))
        except ValueError:
            logger.debug(f"Unparseable EXIF date in {path}: {raw_date!r}")

    return ExifData(date_taken=date_taken, camera_make=make, camera_model=model)


def summarize_failures(messages: list[str]) -> str:
    """Single message reporting every failed deletion of a batch."""
    joined = "\n".join(messages)
    return f"Some photos could not be deleted:\n\n{joined}\n\nPlease try again."


class PhotoLibrary:
    """
    Photo records plus their stored files.

    Deletions never touch the displayed list directly; the next store
    snapshot reflects them.
    """

    def __init__(
        self,
        store: DocumentStore,
        storage: ObjectStorage,
        collection: str = PHOTOS_COLLECTION,
    ):
        self._store = store
        self._storage = storage
        self._collection = collection

    # ==================== Reading ====================

    def subscribe(
        self,
        callback: Callable[[list[Photo]], None],
        newest_first: bool = False,
    ) -> Subscription:
        """
        Receive all photo records now and after every change.

        Ordered by createdAt: ascending for the slideshow, descending for
        the management grid.
        """
        return self._store.subscribe(
            self._collection,
            lambda documents: callback([Photo.from_record(d.id, d.data) for d in documents]),
            order_by="createdAt",
            descending=newest_first,
        )

    def get_photos(self, newest_first: bool = False) -> list[Photo]:
        documents = self._store.get(self._collection, order_by="createdAt", descending=newest_first)
        return [Photo.from_record(d.id, d.data) for d in documents]

    # ==================== Uploading ====================

    def upload_photo(self, path: Path) -> str:
        """
        Upload one photo file.

        Returns:
            The id of the new photo record.

        Raises:
            OSError: if the file cannot be read or stored. The placeholder
                record, if already written, is left in status "error".
        """
        path = Path(path)
        exif = read_exif(path)
        data = path.read_bytes()

        doc_id = self._store.add(self._collection, {
            "fileName": path.name,
            "status": PhotoStatus.UPLOADING.value,
            "createdAt": SERVER_TIMESTAMP,
            "dateTaken": exif.date_taken,
            "cameraMake": exif.camera_make,
            "cameraModel": exif.camera_model,
        })

        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        metadata = {
            "contentType": content_type,
            "dateTaken": exif.date_taken.isoformat() if exif.date_taken else "unknown",
            "cameraMake": exif.camera_make or "unknown",
            "cameraModel": exif.camera_model or "unknown",
            "originalFileName": path.name,
        }
        raw_path = f"{RAW_UPLOADS_PREFIX}{doc_id}{path.suffix.lower()}"
        try:
            self._storage.upload(raw_path, data, metadata)
        except OSError:
            self._store.update(self._collection, doc_id, {"status": PhotoStatus.ERROR.value})
            raise

        logger.info(f"Uploaded raw file {path.name} as {raw_path}")
        return doc_id

    def upload_photos(self, paths: Iterable[Path]) -> list[str]:
        """
        Upload several files, attempting every one.

        Returns:
            One error message per failed file (empty on full success).
        """
        failures = []
        for path in paths:
            try:
                self.upload_photo(path)
            except (OSError, KeyError) as e:
                logger.error(f"Failed to upload {path}: {e}")
                failures.append(f"Failed to upload {Path(path).name}.")
        return failures

    # ==================== Deleting ====================

    def delete_photo(self, photo: Photo, confirm: Optional[ConfirmCallback] = None) -> bool:
        """
        Delete a photo's stored file, then its record.

        Args:
            photo: The photo to delete
            confirm: Asked before deleting; None skips the confirmation
                (batch deletes confirm once up front).

        Returns:
            False if the user declined.

        Raises:
            PhotoDeleteError: if the file or the record could not be removed.
        """
        if confirm is not None and not confirm(
            f'Are you sure you want to delete the photo: "{photo.file_name}"?'
        ):
            return False
        try:
            if photo.storage_path:
                self._storage.delete(photo.storage_path)
            else:
                self._delete_raw_upload(photo)
            self._store.delete(self._collection, photo.id)
        except OSError as e:
            logger.error(f"Error deleting photo {photo.id}: {e}")
            raise PhotoDeleteError(f"Failed to delete {photo.file_name}.") from e
        logger.info(f"Photo deleted: {photo.file_name} ({photo.id})")
        return True

    def _delete_raw_upload(self, photo: Photo) -> None:
        """Remove the unprocessed upload of a photo that never completed."""
        raw_path = f"{RAW_UPLOADS_PREFIX}{photo.id}{Path(photo.file_name).suffix.lower()}"
        try:
            self._storage.delete(raw_path)
        except FileNotFoundError:
            return
        logger.debug(f"Removed raw upload {raw_path}")

    def delete_photos(
        self,
        photos: list[Photo],
        confirm: Optional[ConfirmCallback] = None,
    ) -> list[str]:
        """
        Delete several photos after one confirmation.

        Every deletion is attempted; successes are never rolled back.

        Returns:
            The error message of each failed deletion, in input order.
        """
        if not photos:
            return []
        if confirm is not None and not confirm(
            f"Are you sure you want to delete {len(photos)} selected photos?"
        ):
            return []

        logger.info(f"Deleting {len(photos)} photos")
        failures = []
        for photo in photos:
            try:
                self.delete_photo(photo)
            except PhotoDeleteError as e:
                failures.append(str(e))
        return failures
