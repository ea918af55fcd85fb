"""
Offline image cache.

Two halves:
- CachingImageAdapter, a requests transport adapter that serves GET requests
  for the remote image origin cache-first (read-through, no expiry).
- ImageCacheWorker, a background worker answering CACHE_IMAGES messages by
  pinning every URL into the cache and broadcasting the outcome to all
  registered display clients.
"""

import hashlib
import json
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional
from urllib.parse import urlsplit

import requests
from requests.adapters import BaseAdapter, HTTPAdapter
from requests.structures import CaseInsensitiveDict
from requests.utils import get_encoding_from_headers
from loguru import logger

from .document_store import Subscription


IMAGE_CACHE_NAME = "image-cache-v1"

# Message protocol between display clients and the worker
CACHE_IMAGES = "CACHE_IMAGES"
CACHE_COMPLETE = "CACHE_COMPLETE"
CACHE_ERROR = "CACHE_ERROR"

# Headers worth keeping with a cached body
_KEPT_HEADERS = ("Content-Type", "Content-Length", "ETag", "Last-Modified")


@dataclass(frozen=True)
class CachedResponse:
    """A response body stored in the cache."""
    url: str
    status_code: int
    headers: dict
    content: bytes

    def to_response(self, request: Optional[requests.PreparedRequest] = None) -> requests.Response:
        """Rebuild a requests.Response from the cached entry."""
        response = requests.Response()
        response.status_code = self.status_code
        response.headers = CaseInsensitiveDict(self.headers)
        response.encoding = get_encoding_from_headers(response.headers)
        response.url = self.url
        response.reason = "OK (cached)"
        response.request = request
        response._content = self.content
        return response


class ImageCache:
    """
    Durable on-disk cache keyed by full request URL.

    Structure:
    - {cache_dir}/{IMAGE_CACHE_NAME}/{sha1(url)}.bin  - response body
    - {cache_dir}/{IMAGE_CACHE_NAME}/{sha1(url)}.json - url, status, headers

    Entries persist until evicted or the cache is cleared.
    """

    def __init__(self, cache_dir: Path, name: str = IMAGE_CACHE_NAME):
        self.cache_dir = Path(cache_dir) / name
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @staticmethod
    def _key(url: str) -> str:
        return hashlib.sha1(url.encode('utf-8')).hexdigest()

    def _paths(self, url: str) -> tuple[Path, Path]:
        key = self._key(url)
        return self.cache_dir / f"{key}.bin", self.cache_dir / f"{key}.json"

    def get(self, url: str) -> Optional[CachedResponse]:
        """Get the cached entry for a URL, if any."""
        body_path, meta_path = self._paths(url)
        with self._lock:
            if not meta_path.exists() or not body_path.exists():
                return None
            with open(meta_path, 'r', encoding='utf-8') as f:
                meta = json.load(f)
            content = body_path.read_bytes()
        return CachedResponse(
            url=meta["url"],
            status_code=meta["status_code"],
            headers=meta.get("headers", {}),
            content=content,
        )

    def put(self, url: str, response: requests.Response) -> CachedResponse:
        """Store (or overwrite) the entry for a URL from a response."""
        entry = CachedResponse(
            url=url,
            status_code=response.status_code,
            headers={k: response.headers[k] for k in _KEPT_HEADERS if k in response.headers},
            content=response.content,
        )
        body_path, meta_path = self._paths(url)
        meta = {"url": url, "status_code": entry.status_code, "headers": entry.headers}
        with self._lock:
            body_path.write_bytes(entry.content)
            with open(meta_path, 'w', encoding='utf-8') as f:
                json.dump(meta, f, indent=2)
        return entry

    def evict(self, url: str) -> bool:
        """Remove a URL from the cache. Returns True if it was cached."""
        body_path, meta_path = self._paths(url)
        with self._lock:
            existed = meta_path.exists()
            body_path.unlink(missing_ok=True)
            meta_path.unlink(missing_ok=True)
        return existed

    def clear(self) -> None:
        """Remove every entry."""
        with self._lock:
            for path in self.cache_dir.iterdir():
                if path.suffix in (".bin", ".json"):
                    path.unlink(missing_ok=True)

    def urls(self) -> list[str]:
        """All cached URLs."""
        result = []
        with self._lock:
            for meta_path in sorted(self.cache_dir.glob("*.json")):
                with open(meta_path, 'r', encoding='utf-8') as f:
                    result.append(json.load(f)["url"])
        return result

    def __contains__(self, url: str) -> bool:
        _, meta_path = self._paths(url)
        return meta_path.exists()


def host_matches(url: str, origin_host: str) -> bool:
    """Whether a URL targets the remote image origin."""
    return (urlsplit(url).hostname or "").lower() == origin_host.lower()


class CachingImageAdapter(BaseAdapter):
    """
    Read-through cache for the remote image origin.

    GET requests whose host equals origin_host are served from the cache on
    a hit; on a miss the upstream adapter fetches, 2xx responses are stored,
    and the network response is returned. Everything else passes through.
    """

    def __init__(
        self,
        cache: ImageCache,
        origin_host: str,
        upstream: Optional[BaseAdapter] = None,
    ):
        super().__init__()
        self.cache = cache
        self.origin_host = origin_host
        self.upstream = upstream or HTTPAdapter()

    def send(self, request, **kwargs):
        if request.method != "GET" or not host_matches(request.url, self.origin_host):
            return self.upstream.send(request, **kwargs)

        cached = self.cache.get(request.url)
        if cached is not None:
            logger.debug(f"Image cache hit: {request.url}")
            return cached.to_response(request)

        response = self.upstream.send(request, **kwargs)
        if response.ok:
            self.cache.put(request.url, response)
            logger.debug(f"Image cache stored: {request.url}")
        return response

    def close(self):
        self.upstream.close()


def create_image_session(
    cache: ImageCache,
    origin_host: str,
    upstream: Optional[BaseAdapter] = None,
) -> requests.Session:
    """A requests.Session whose image fetches go through the cache."""
    session = requests.Session()
    adapter = CachingImageAdapter(cache, origin_host, upstream)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


ClientCallback = Callable[[dict], None]


class ImageCacheWorker:
    """
    Background worker that pins image URLs into the cache.

    Runs in its own thread pool, isolated from the display thread. Replies
    are broadcast to every registered client.
    """

    def __init__(
        self,
        cache: ImageCache,
        session: Optional[requests.Session] = None,
        max_workers: int = 6,
        timeout: Optional[float] = None,
    ):
        self.cache = cache
        # Plain session: pins must bypass the cache-first adapter
        self._session = session or requests.Session()
        self._timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="image-cache")
        self._clients: list[ClientCallback] = []
        self._clients_lock = threading.Lock()

    # ==================== Clients ====================

    def add_client(self, callback: ClientCallback) -> Subscription:
        """Register a display client for worker replies."""
        with self._clients_lock:
            self._clients.append(callback)

        def _remove():
            with self._clients_lock:
                if callback in self._clients:
                    self._clients.remove(callback)

        return Subscription(_remove)

    def _broadcast(self, message: dict) -> None:
        with self._clients_lock:
            clients = list(self._clients)
        for client in clients:
            try:
                client(message)
            except Exception:
                logger.exception("Image cache client failed to handle reply")

    # ==================== Messages ====================

    def post_message(self, message: dict) -> Optional[Future]:
        """
        Handle a message from a display client.

        Returns:
            A Future resolving to the broadcast reply, or None if the
            message type is not understood.
        """
        if not isinstance(message, dict) or message.get("type") != CACHE_IMAGES:
            logger.warning(f"Image cache worker ignoring message: {message!r}")
            return None
        urls = list(message.get("payload") or [])
        return self._executor.submit(self._handle_cache_images, urls)

    def _handle_cache_images(self, urls: list[str]) -> dict:
        failed = self.pin(urls)
        if failed:
            reply = {"type": CACHE_ERROR, "failedUrls": failed}
        else:
            reply = {"type": CACHE_COMPLETE}
        self._broadcast(reply)
        return reply

    # ==================== Pinning ====================

    def pin(self, urls: Iterable[str]) -> list[str]:
        """
        Fetch every URL from the network and overwrite its cache entry.

        All fetches run concurrently and the call returns only when each one
        has settled. Failures are collected, never fatal to the batch.

        Returns:
            The URLs that could not be cached, in input order.
        """
        urls = list(urls)
        if not urls:
            return []

        with ThreadPoolExecutor(max_workers=min(len(urls), 16), thread_name_prefix="image-pin") as pool:
            futures = {url: pool.submit(self._pin_one, url) for url in urls}
            wait(futures.values())

        failed = [url for url, future in futures.items() if not future.result()]
        logger.info(f"Pinned {len(urls) - len(failed)}/{len(urls)} images")
        return failed

    def _pin_one(self, url: str) -> bool:
        try:
            response = self._session.get(
                url,
                headers={"Cache-Control": "no-cache"},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"Failed to pin {url}: {e}")
            return False
        if not response.ok:
            logger.warning(f"Failed to pin {url}: HTTP {response.status_code}")
            return False
        try:
            self.cache.put(url, response)
        except OSError as e:
            logger.warning(f"Failed to store {url}: {e}")
            return False
        return True

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the worker, optionally waiting for pending pins."""
        self._executor.shutdown(wait=wait)
