"""
Photo processing step.

Runs when a raw upload is finalized in object storage: orients the image by
its EXIF data, crops it to cover the display frame, re-encodes it as WebP,
publishes it under processed-images/ and marks the photo record complete.
"""

import io
from pathlib import PurePosixPath
from typing import Optional

from PIL import Image, ImageOps
from loguru import logger

from .config import ProcessingConfig
from .document_store import DocumentStore, Subscription
from .object_storage import (
    ObjectStorage, StoredObject, RAW_UPLOADS_PREFIX, PROCESSED_IMAGES_PREFIX,
)
from .models import PhotoStatus


PHOTOS_COLLECTION = "photos"


def doc_id_from_path(path: str) -> str:
    """Photo record id encoded in an object path ("raw-uploads/<id>.jpg")."""
    return PurePosixPath(path).stem


def render_webp(data: bytes, width: int, height: int, quality: int) -> bytes:
    """
    Orient, cover-crop and re-encode an image.

    Args:
        data: Encoded source image
        width: Output width in pixels
        height: Output height in pixels
        quality: WebP quality (0-100)

    Returns:
        WebP-encoded bytes of exactly width x height pixels
    """
    with Image.open(io.BytesIO(data)) as im:
        im = ImageOps.exif_transpose(im)
        if im.mode not in ("RGB", "RGBA"):
            im = im.convert("RGB")
        resampling = getattr(Image, "Resampling", Image)
        im = ImageOps.fit(im, (width, height), method=resampling.LANCZOS, centering=(0.5, 0.5))
        out = io.BytesIO()
        im.save(out, format="WEBP", quality=quality)
        return out.getvalue()


class ImageProcessor:
    """
    Turns raw uploads into display-ready images.

    Attach to a storage with attach(); every finalized object under
    raw-uploads/ with an image content type is processed. Anything else is
    ignored.
    """

    def __init__(
        self,
        store: DocumentStore,
        storage: ObjectStorage,
        config: Optional[ProcessingConfig] = None,
        collection: str = PHOTOS_COLLECTION,
    ):
        self._store = store
        self._storage = storage
        self._config = config or ProcessingConfig()
        self._collection = collection

    def attach(self) -> Subscription:
        """Start processing finalized uploads."""
        return self._storage.on_finalize(self.handle_finalized)

    def handle_finalized(self, obj: StoredObject) -> bool:
        """
        Process one finalized object.

        Returns:
            True if the object was processed and the record marked complete.
        """
        if not obj.content_type.startswith("image/") or not obj.path.startswith(RAW_UPLOADS_PREFIX):
            logger.debug(f"Not an image or not in {RAW_UPLOADS_PREFIX}, skipping {obj.path}")
            return False

        doc_id = doc_id_from_path(obj.path)
        logger.info(f"Processing photo for document {doc_id}")
        new_path = f"{PROCESSED_IMAGES_PREFIX}{doc_id}.webp"

        try:
            data = self._storage.download(obj.path)
            webp = render_webp(
                data,
                self._config.max_width,
                self._config.max_height,
                self._config.quality,
            )
            self._storage.upload(new_path, webp, {"contentType": "image/webp"})
            image_url = self._storage.signed_url(new_path)
            self._store.update(self._collection, doc_id, {
                "status": PhotoStatus.COMPLETE.value,
                "imageUrl": image_url,
                "storagePath": new_path,
            })
        except (OSError, ValueError, KeyError, Image.DecompressionBombError) as e:
            logger.error(f"Failed to process image {obj.path}: {e}")
            self._mark_error(doc_id)
            return False

        logger.info(f"Optimized image uploaded to {new_path}")

        try:
            self._storage.delete(obj.path)
        except OSError as e:
            logger.warning(f"Could not remove raw upload {obj.path}: {e}")
        return True

    def _mark_error(self, doc_id: str) -> None:
        try:
            self._store.update(self._collection, doc_id, {"status": PhotoStatus.ERROR.value})
        except (OSError, KeyError) as e:
            logger.error(f"Could not mark photo {doc_id} as failed: {e}")
