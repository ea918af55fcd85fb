"""
Object storage for photo files.

Abstract base class for the blob store that holds raw uploads and processed
images, plus a local directory implementation. Finalize listeners are told
about every completed upload, which is how the processing step is triggered.
"""

import json
import mimetypes
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Callable, Optional

from loguru import logger

from .document_store import Subscription


RAW_UPLOADS_PREFIX = "raw-uploads/"
PROCESSED_IMAGES_PREFIX = "processed-images/"


@dataclass(frozen=True)
class StoredObject:
    """Metadata of an object in storage."""
    path: str
    size: int
    content_type: str = "application/octet-stream"
    metadata: dict = field(default_factory=dict)


FinalizeCallback = Callable[[StoredObject], None]


class ObjectStorage(ABC):
    """
    Abstract object storage.

    Paths are slash-separated keys such as "raw-uploads/<id>.jpg".
    """

    def __init__(self):
        self._finalize_listeners: list[FinalizeCallback] = []
        self._listeners_lock = threading.Lock()

    @abstractmethod
    def upload(self, path: str, data: bytes, metadata: Optional[dict] = None) -> StoredObject:
        """Store an object, overwriting any existing one at path."""
        pass

    @abstractmethod
    def download(self, path: str) -> bytes:
        """Read an object. Raises FileNotFoundError if missing."""
        pass

    @abstractmethod
    def signed_url(self, path: str) -> str:
        """Long-lived URL for displaying an object."""
        pass

    @abstractmethod
    def delete(self, path: str) -> None:
        """Delete an object. Raises FileNotFoundError if missing."""
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass

    # ==================== Finalize Events ====================

    def on_finalize(self, callback: FinalizeCallback) -> Subscription:
        """Call back after every completed upload."""
        with self._listeners_lock:
            self._finalize_listeners.append(callback)

        def _remove():
            with self._listeners_lock:
                if callback in self._finalize_listeners:
                    self._finalize_listeners.remove(callback)

        return Subscription(_remove)

    def _finalized(self, obj: StoredObject) -> None:
        with self._listeners_lock:
            listeners = list(self._finalize_listeners)
        for listener in listeners:
            try:
                listener(obj)
            except Exception:
                logger.exception(f"Finalize listener failed for {obj.path}")


def _normalize_path(path: str) -> str:
    """Reject absolute and parent-relative keys."""
    pure = PurePosixPath(path)
    if pure.is_absolute() or ".." in pure.parts or not pure.parts:
        raise ValueError(f"Invalid object path: {path!r}")
    return str(pure)


class LocalObjectStorage(ObjectStorage):
    """
    Directory-backed object storage.

    Structure:
    - {root}/{path}            - object bytes
    - {root}/{path}.meta.json  - contentType and custom metadata
    """

    META_SUFFIX = ".meta.json"

    def __init__(self, root: Path, public_base_url: Optional[str] = None):
        super().__init__()
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

        logger.debug(f"Initialized local object storage at {self.root}")

    def _file(self, path: str) -> Path:
        return self.root / _normalize_path(path)

    def _meta_file(self, path: str) -> Path:
        file_path = self._file(path)
        return file_path.with_name(file_path.name + self.META_SUFFIX)

    def upload(self, path: str, data: bytes, metadata: Optional[dict] = None) -> StoredObject:
        metadata = dict(metadata or {})
        content_type = metadata.pop("contentType", None) \
            or mimetypes.guess_type(path)[0] \
            or "application/octet-stream"

        file_path = self._file(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(data)
        with open(self._meta_file(path), 'w', encoding='utf-8') as f:
            json.dump({"contentType": content_type, "metadata": metadata}, f, indent=2)

        obj = StoredObject(
            path=_normalize_path(path),
            size=len(data),
            content_type=content_type,
            metadata=metadata,
        )
        logger.debug(f"Uploaded {obj.path} ({obj.size} bytes, {content_type})")
        self._finalized(obj)
        return obj

    def stat(self, path: str) -> StoredObject:
        """Metadata of an existing object."""
        file_path = self._file(path)
        if not file_path.exists():
            raise FileNotFoundError(path)
        content_type = "application/octet-stream"
        metadata = {}
        meta_file = self._meta_file(path)
        if meta_file.exists():
            with open(meta_file, 'r', encoding='utf-8') as f:
                meta = json.load(f)
            content_type = meta.get("contentType", content_type)
            metadata = meta.get("metadata", {})
        return StoredObject(
            path=_normalize_path(path),
            size=file_path.stat().st_size,
            content_type=content_type,
            metadata=metadata,
        )

    def download(self, path: str) -> bytes:
        file_path = self._file(path)
        if not file_path.exists():
            raise FileNotFoundError(path)
        return file_path.read_bytes()

    def signed_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{_normalize_path(path)}"
        return self._file(path).resolve().as_uri()

    def delete(self, path: str) -> None:
        file_path = self._file(path)
        if not file_path.exists():
            raise FileNotFoundError(path)
        file_path.unlink()
        self._meta_file(path).unlink(missing_ok=True)
        logger.debug(f"Deleted object {path}")

    def exists(self, path: str) -> bool:
        return self._file(path).exists()
