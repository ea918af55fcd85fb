"""Shared fixtures: fixed timezone, fake timers, fake HTTP transport, stores."""

import pytest

from engine import timezone_utils
from engine.document_store import JsonDocumentStore
from engine.object_storage import LocalObjectStorage

from helpers import FakeTimerFactory, FakeTransport


@pytest.fixture(autouse=True)
def utc_timezone():
    previous = timezone_utils.get_timezone_name()
    timezone_utils.set_timezone("UTC")
    yield
    timezone_utils.set_timezone(previous)


@pytest.fixture
def timers():
    return FakeTimerFactory()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def store(tmp_path):
    return JsonDocumentStore(tmp_path / "store")


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(tmp_path / "objects")
