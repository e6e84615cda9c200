"""Pytest configuration and shared fixtures for btclient tests."""

from __future__ import annotations

import hashlib
import logging

import pytest

from btclient.models import ClientConfig
from btclient.utils.di import DIContainer
from tests.fakes import FakeDHT, FakePortAllocator, FakeTrackerFactory

INFO_DICT = (
    b"d6:lengthi12345e4:name8:test.bin12:piece lengthi16384e6:pieces20:"
    + b"\x00" * 20
    + b"e"
)
ANNOUNCE_URL = "http://tracker.example/announce"
TORRENT_BYTES = b"d8:announce31:" + ANNOUNCE_URL.encode() + b"4:info" + INFO_DICT + b"e"
INFO_HASH = hashlib.sha1(INFO_DICT).digest()


def pytest_configure(config):
    """Register all project markers to avoid warnings when ini isn't loaded."""
    markers = [
        ("unit", "marks tests as unit tests"),
        ("core", "marks tests as core functionality tests"),
        ("discovery", "marks tests as peer discovery tests"),
        ("tracker", "marks tests as tracker tests"),
        ("session", "marks tests as session management tests"),
        ("utils", "marks tests as utility tests"),
        ("config", "marks tests as configuration tests"),
        ("cli", "marks tests as CLI tests"),
    ]
    for name, desc in markers:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)


@pytest.fixture
def info_hash() -> bytes:
    return INFO_HASH


@pytest.fixture
def torrent_bytes() -> bytes:
    return TORRENT_BYTES


@pytest.fixture
def tracker_factory() -> FakeTrackerFactory:
    return FakeTrackerFactory()


@pytest.fixture
def port_allocator() -> FakePortAllocator:
    return FakePortAllocator(6881)


@pytest.fixture
def container(tracker_factory, port_allocator) -> DIContainer:
    """Container wired with in-memory collaborators and no DHT engine."""
    return DIContainer(
        tracker_factory=tracker_factory,
        port_allocator=port_allocator,
    )


@pytest.fixture
def owned_dhts() -> list[FakeDHT]:
    return []


@pytest.fixture
def dht_container(container, owned_dhts) -> DIContainer:
    """Container that can build owned DHT engines."""

    def factory(*, node_id: bytes, **_kwargs):
        dht = FakeDHT(node_id=node_id)
        owned_dhts.append(dht)
        return dht

    return container.with_overrides(dht_factory=factory)


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(dht=False, trackers=True, torrent_port=None)
