"""
Document store for events and photos.

Abstract base class for the store the kiosk reads and writes, plus a JSON
file implementation used for local deployments and tests.

Subscriptions push full snapshots: subscribers never receive deltas, so a
late update always supersedes an earlier one.
"""

import json
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, date
from pathlib import Path
from typing import Any, Callable, Optional

import pytz
from loguru import logger


class _ServerTimestamp:
    """Sentinel replaced by the store's current UTC time on write."""

    def __repr__(self):
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class DocumentNotFoundError(KeyError):
    """Raised when updating a document that does not exist."""


@dataclass(frozen=True)
class Document:
    """A record and its store-assigned id."""
    id: str
    data: dict


SnapshotCallback = Callable[[list[Document]], None]


class Subscription:
    """
    Handle for a live snapshot subscription.

    The owner must call cancel() on teardown; nothing stops a subscription
    implicitly.
    """

    def __init__(self, on_cancel: Callable[[], None]):
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop delivering snapshots. Safe to call more than once."""
        if self._active:
            self._active = False
            self._on_cancel()


@dataclass(eq=False)
class _Query:
    collection: str
    callback: SnapshotCallback
    order_by: Optional[str] = None
    descending: bool = False
    where: Optional[dict] = None
    # Version of the last snapshot this query received
    delivered: int = -1


class DocumentStore(ABC):
    """
    Abstract document store.

    Implementations must handle persistence and snapshot delivery.
    """

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        order_by: Optional[str] = None,
        descending: bool = False,
        where: Optional[dict] = None,
    ) -> Subscription:
        """Deliver the current snapshot now and again after every change."""
        pass

    @abstractmethod
    def add(self, collection: str, record: dict) -> str:
        """Add a record and return its new id."""
        pass

    @abstractmethod
    def update(self, collection: str, doc_id: str, partial: dict) -> None:
        """Merge fields into an existing record."""
        pass

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a record permanently (no-op if it does not exist)."""
        pass

    @abstractmethod
    def get(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
        where: Optional[dict] = None,
    ) -> list[Document]:
        """One-time read of a collection."""
        pass


def _sort_key(value: Any) -> tuple:
    # None sorts first, like missing fields in Firestore ordering
    if value is None:
        return (0, "")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = pytz.UTC.localize(value)
        return (1, value.timestamp())
    return (2, value)


def apply_query(
    documents: list[Document],
    order_by: Optional[str] = None,
    descending: bool = False,
    where: Optional[dict] = None,
) -> list[Document]:
    """Filter by field equality and order by a single field."""
    result = documents
    if where:
        result = [
            d for d in result
            if all(d.data.get(k) == v for k, v in where.items())
        ]
    if order_by:
        result = sorted(result, key=lambda d: _sort_key(d.data.get(order_by)), reverse=descending)
    return list(result)


# ==================== JSON encoding ====================

def _encode(value: Any) -> Any:
    """Tag datetimes and dates so they round-trip exactly."""
    if isinstance(value, datetime):
        return {"$timestamp": value.isoformat()}
    if isinstance(value, date):
        return {"$date": value.isoformat()}
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {"$timestamp"}:
            return datetime.fromisoformat(value["$timestamp"])
        if set(value) == {"$date"}:
            return date.fromisoformat(value["$date"])
        return {k: _decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(v) for v in value]
    return value


class JsonDocumentStore(DocumentStore):
    """
    JSON file-based document store.

    Structure:
    - {storage_dir}/{collection}.json - all records of a collection

    Writes are serialised with a lock and only reach memory once the file
    is saved. Every write stamps its snapshot with a version; subscribers
    are notified on the writing thread after the write lock is released,
    one delivery at a time, and a snapshot older than one a subscriber
    already received is dropped.
    """

    def __init__(self, storage_dir: Path):
        self.storage_dir = Path(storage_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._delivery_lock = threading.RLock()
        self._collections: dict[str, dict[str, dict]] = {}
        self._queries: list[_Query] = []
        self._version = 0

        logger.debug(f"Initialized JSON document store at {self.storage_dir}")

    def _collection_file(self, collection: str) -> Path:
        safe = collection.replace(":", "_").replace("/", "_")
        return self.storage_dir / f"{safe}.json"

    def _load(self, collection: str) -> dict[str, dict]:
        """Get the in-memory records of a collection, reading the file once."""
        if collection in self._collections:
            return self._collections[collection]

        records: dict[str, dict] = {}
        file_path = self._collection_file(collection)
        if file_path.exists():
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            records = {doc_id: _decode(record) for doc_id, record in data.get("documents", {}).items()}
            logger.debug(f"Loaded {len(records)} documents from {collection}")

        self._collections[collection] = records
        return records

    def _save(self, collection: str, records: dict[str, dict]) -> None:
        data = {
            "collection": collection,
            "documents": {doc_id: _encode(record) for doc_id, record in records.items()},
        }
        file_path = self._collection_file(collection)
        tmp_path = file_path.with_suffix(".json.tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        tmp_path.replace(file_path)

    def _commit(self, collection: str, records: dict[str, dict]) -> tuple[int, list[Document]]:
        """Save, then swap the records into memory. Caller holds the lock."""
        self._save(collection, records)
        self._collections[collection] = records
        self._version += 1
        return self._version, self._snapshot(collection)

    @staticmethod
    def _resolve_sentinels(record: dict) -> dict:
        now = datetime.now(pytz.UTC)
        return {k: (now if v is SERVER_TIMESTAMP else v) for k, v in record.items()}

    def _snapshot(self, collection: str) -> list[Document]:
        records = self._load(collection)
        return [Document(id=doc_id, data=dict(record)) for doc_id, record in records.items()]

    # ==================== Queries ====================

    def get(
        self,
        collection: str,
        order_by: Optional[str] = None,
        descending: bool = False,
        where: Optional[dict] = None,
    ) -> list[Document]:
        with self._lock:
            snapshot = self._snapshot(collection)
        return apply_query(snapshot, order_by, descending, where)

    def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        order_by: Optional[str] = None,
        descending: bool = False,
        where: Optional[dict] = None,
    ) -> Subscription:
        query = _Query(collection, callback, order_by, descending, where)
        with self._lock:
            self._queries.append(query)
            version = self._version
            snapshot = self._snapshot(collection)

        def _remove():
            with self._lock:
                if query in self._queries:
                    self._queries.remove(query)

        subscription = Subscription(_remove)
        with self._delivery_lock:
            if version > query.delivered:
                query.delivered = version
                callback(apply_query(snapshot, order_by, descending, where))
        return subscription

    def _notify(self, collection: str, version: int, snapshot: list[Document]) -> None:
        with self._lock:
            queries = [q for q in self._queries if q.collection == collection]
        with self._delivery_lock:
            for query in queries:
                if version <= query.delivered:
                    # A newer snapshot already reached this query
                    continue
                query.delivered = version
                try:
                    query.callback(apply_query(snapshot, query.order_by, query.descending, query.where))
                except Exception:
                    # A broken listener must not stop delivery to the others
                    logger.exception(f"Snapshot listener failed for {collection}")

    # ==================== Mutations ====================

    def add(self, collection: str, record: dict) -> str:
        doc_id = uuid.uuid4().hex
        with self._lock:
            records = dict(self._load(collection))
            records[doc_id] = self._resolve_sentinels(record)
            version, snapshot = self._commit(collection, records)
        logger.debug(f"Added {collection}/{doc_id}")
        self._notify(collection, version, snapshot)
        return doc_id

    def update(self, collection: str, doc_id: str, partial: dict) -> None:
        with self._lock:
            records = dict(self._load(collection))
            if doc_id not in records:
                raise DocumentNotFoundError(f"{collection}/{doc_id}")
            records[doc_id] = {**records[doc_id], **self._resolve_sentinels(partial)}
            version, snapshot = self._commit(collection, records)
        logger.debug(f"Updated {collection}/{doc_id}: {sorted(partial)}")
        self._notify(collection, version, snapshot)

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            records = dict(self._load(collection))
            if records.pop(doc_id, None) is None:
                return
            version, snapshot = self._commit(collection, records)
        logger.debug(f"Deleted {collection}/{doc_id}")
        self._notify(collection, version, snapshot)
