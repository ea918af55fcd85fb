"""
Background worker - runs blocking operations off the GUI thread.

Photo uploads, batch deletions and image loads go through a thread pool so
the slideshow never stalls. Results are delivered via Qt signals, which Qt
queues onto the main thread.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, Future
from typing import Callable

from PySide6.QtCore import QObject, Signal
from loguru import logger


class NetworkWorker(QObject):
    """
    Runs blocking operations in background threads.

    Operations submitted with submit_latest() share a slot: only the newest
    one of a slot reports back, older ones are cancelled or dropped.
    """

    # Args: (operation_id: str, result: object)
    operation_finished = Signal(str, object)

    # Args: (operation_id: str, error_message: str)
    operation_error = Signal(str, str)

    def __init__(self, max_workers: int = 3, parent=None):
        super().__init__(parent)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="kiosk-io")
        self._pending: dict[str, Future] = {}
        self._latest: dict[str, str] = {}
        self._seq = 0
        self._lock = threading.Lock()

    def submit(self, operation_id: str, func: Callable, *args, **kwargs) -> None:
        """
        Submit a blocking operation to run in a background thread.

        Args:
            operation_id: Identifier echoed back in the result signal
            func: The blocking function to run
            *args, **kwargs: Arguments to pass to func
        """
        future = self._executor.submit(func, *args, **kwargs)
        with self._lock:
            self._pending[operation_id] = future
        future.add_done_callback(lambda f: self._on_done(operation_id, f))

    def submit_latest(self, slot: str, func: Callable, *args, **kwargs) -> str:
        """
        Submit an operation that supersedes earlier ones of the same slot.

        Returns:
            The operation id, "<slot>:<n>".
        """
        with self._lock:
            self._seq += 1
            operation_id = f"{slot}:{self._seq}"
            previous = self._latest.get(slot)
            self._latest[slot] = operation_id
            stale = self._pending.get(previous) if previous else None
        if stale is not None:
            stale.cancel()
        self.submit(operation_id, func, *args, **kwargs)
        return operation_id

    def _is_superseded(self, operation_id: str) -> bool:
        slot, sep, _ = operation_id.rpartition(":")
        return bool(sep) and slot in self._latest and self._latest[slot] != operation_id

    def _on_done(self, operation_id: str, future: Future) -> None:
        with self._lock:
            self._pending.pop(operation_id, None)
            superseded = self._is_superseded(operation_id)
        if future.cancelled() or superseded:
            return
        error = future.exception()
        if error is None:
            self.operation_finished.emit(operation_id, future.result())
            return
        error_msg = f"{type(error).__name__}: {error}"
        logger.opt(exception=error).error(f"Operation '{operation_id}' failed: {error_msg}")
        self.operation_error.emit(operation_id, error_msg)

    def is_latest(self, operation_id: str) -> bool:
        """Whether no newer operation of the same slot was submitted since."""
        with self._lock:
            return not self._is_superseded(operation_id)

    def is_pending(self, operation_id: str) -> bool:
        with self._lock:
            return operation_id in self._pending

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the executor; without waiting, queued operations are dropped."""
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
