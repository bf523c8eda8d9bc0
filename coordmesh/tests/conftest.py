"""
Shared fixtures: an in-memory coordination service and a connected
session onto it.
"""

from __future__ import annotations

from typing import Iterator

import pytest

from coordmesh.coordination.memory import InMemoryCoordinationService, InMemorySession
from coordmesh.coordination.watcher import ConnectionWatcher
from coordmesh.tests.support import TEST_TIMEOUT_MS


@pytest.fixture
def service() -> InMemoryCoordinationService:
    return InMemoryCoordinationService()


@pytest.fixture
def watcher() -> ConnectionWatcher:
    return ConnectionWatcher(session_timeout_ms=TEST_TIMEOUT_MS)


@pytest.fixture
def session(service: InMemoryCoordinationService, watcher: ConnectionWatcher) -> Iterator[InMemorySession]:
    sess = service.connect("memory:0", TEST_TIMEOUT_MS, watcher)
    watcher.wait_for_connection()
    yield sess
    sess.close()
