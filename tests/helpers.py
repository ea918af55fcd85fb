"""Test doubles and builders shared by the test modules."""

import io
from datetime import datetime, timedelta

import pytz
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict
from PIL import Image


def utc(*args) -> datetime:
    return pytz.UTC.localize(datetime(*args))


# ==================== Timers ====================

class FakeTimer:
    def __init__(self, interval_ms, callback):
        self.interval_ms = interval_ms
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class FakeTimerFactory:
    """Records every timer the scheduler arms; tests fire them by hand."""

    def __init__(self):
        self.timers: list[FakeTimer] = []

    def __call__(self, interval_ms, callback):
        timer = FakeTimer(interval_ms, callback)
        self.timers.append(timer)
        return timer

    def live(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def tick(self):
        live = self.live()
        assert len(live) == 1, f"expected one live timer, found {len(live)}"
        timer = live[0]
        timer.fired = True
        timer.callback()


# ==================== HTTP ====================

class FakeTransport(BaseAdapter):
    """
    In-memory transport.

    routes maps URL -> (status, body) or an exception instance to raise.
    """

    def __init__(self, routes=None):
        super().__init__()
        self.routes = dict(routes or {})
        self.requests: list[requests.PreparedRequest] = []

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.requests.append(request)
        route = self.routes.get(request.url)
        if isinstance(route, Exception):
            raise route
        status, body = route if route is not None else (404, b"not found")
        response = requests.Response()
        response.status_code = status
        response.headers = CaseInsensitiveDict({"Content-Type": "image/webp"})
        response._content = body
        response.url = request.url
        response.request = request
        response.reason = "OK" if status < 400 else "Error"
        response.elapsed = timedelta(0)
        return response

    def close(self):
        pass

    def calls(self, url: str) -> int:
        return sum(1 for r in self.requests if r.url == url)


def jpeg_bytes(size=(64, 48), color="red", exif=None) -> bytes:
    out = io.BytesIO()
    image = Image.new("RGB", size, color)
    if exif is not None:
        image.save(out, format="JPEG", exif=exif)
    else:
        image.save(out, format="JPEG")
    return out.getvalue()
