"""
Connection Establisher Tests

Tests for:
- ConnectionWatcher: connected flag, bounded wait, listeners
- create_connected_session: empty servers, never-connecting servers,
  state re-check after the wait, successful connect
- Backend selection from SessionConfig

Run: python -m pytest coordmesh/tests/test_watcher_connect.py -v
"""

from __future__ import annotations

from typing import Any, Sequence

import pytest

from coordmesh.core.config import SessionConfig
from coordmesh.core.errors import ConfigurationError, ConnectionLossError, ErrorCode
from coordmesh.core.types import AclEntry, CreateMode, OPEN_ACL_UNSAFE
from coordmesh.coordination.connect import (
    connect_from_config,
    create_connected_session,
    session_factory_for,
)
from coordmesh.coordination.kazoo_session import kazoo_session_factory
from coordmesh.coordination.memory import InMemoryCoordinationService
from coordmesh.coordination.protocols import (
    CreateCallback,
    KeeperState,
    SessionState,
    WatchedEvent,
    Watcher,
)
from coordmesh.coordination.watcher import ConnectionWatcher
from coordmesh.tests.support import TEST_TIMEOUT_MS


# =============================================================================
# TEST DOUBLES
# =============================================================================
class RecordingFactory:
    """SessionFactory that remembers its calls and delegates to a service."""

    def __init__(self, service: InMemoryCoordinationService) -> None:
        self.service = service
        self.calls: list[tuple[str, int]] = []
        self.sessions: list[Any] = []

    def __call__(self, servers: str, session_timeout_ms: int, watcher: Watcher) -> Any:
        self.calls.append((servers, session_timeout_ms))
        session = self.service.connect(servers, session_timeout_ms, watcher)
        self.sessions.append(session)
        return session


class DroppedSession:
    """Session that announces a connection but is disconnected when inspected."""

    def __init__(self, servers: str, session_timeout_ms: int, watcher: Watcher) -> None:
        self.session_timeout_ms = session_timeout_ms
        self.closed = False
        watcher.process(WatchedEvent(state=KeeperState.SYNC_CONNECTED))

    @property
    def state(self) -> SessionState:
        return SessionState.CLOSED if self.closed else SessionState.DISCONNECTED

    def create(self, path: str, data: bytes, acl: Sequence[AclEntry], mode: CreateMode) -> str:
        raise AssertionError("not used")

    def create_async(
        self,
        path: str,
        data: bytes,
        acl: Sequence[AclEntry],
        mode: CreateMode,
        callback: CreateCallback,
        ctx: Any = None,
    ) -> None:
        raise AssertionError("not used")

    def close(self) -> None:
        self.closed = True


# =============================================================================
# WATCHER
# =============================================================================
def test_watcher_rejects_non_positive_timeout() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        ConnectionWatcher(session_timeout_ms=0)

    assert exc_info.value.code is ErrorCode.CONFIG_INVALID_VALUE
    assert exc_info.value.context["name"] == "session_timeout_ms"


def test_watcher_tracks_connected_flag() -> None:
    watcher = ConnectionWatcher(session_timeout_ms=TEST_TIMEOUT_MS)
    watcher.process(WatchedEvent(state=KeeperState.SYNC_CONNECTED))
    assert watcher.is_connected
    watcher.wait_for_connection()

    watcher.process(WatchedEvent(state=KeeperState.DISCONNECTED))
    assert not watcher.is_connected
    assert watcher.last_state is KeeperState.DISCONNECTED


def test_watcher_wait_is_bounded() -> None:
    watcher = ConnectionWatcher(session_timeout_ms=TEST_TIMEOUT_MS, connect_timeout_ms=20)
    with pytest.raises(ConnectionLossError) as exc_info:
        watcher.wait_for_connection()
    assert exc_info.value.code is ErrorCode.CONNECTION_WAIT_TIMEOUT
    assert exc_info.value.context["timeout_ms"] == 20


def test_watcher_listener_failure_is_contained() -> None:
    watcher = ConnectionWatcher(session_timeout_ms=TEST_TIMEOUT_MS)
    seen: list[KeeperState] = []

    def broken(event: WatchedEvent) -> None:
        raise RuntimeError("listener failure")

    watcher.add_listener(broken)
    watcher.add_listener(lambda event: seen.append(event.state))
    watcher.process(WatchedEvent(state=KeeperState.SYNC_CONNECTED))
    assert seen == [KeeperState.SYNC_CONNECTED]
    assert watcher.is_connected


# =============================================================================
# CREATE CONNECTED SESSION
# =============================================================================
@pytest.mark.parametrize("servers", ["", "   ", None, [], ["", "  "]])
def test_empty_servers_fail_before_any_io(servers: Any) -> None:
    factory = RecordingFactory(InMemoryCoordinationService())
    watcher = ConnectionWatcher(session_timeout_ms=TEST_TIMEOUT_MS)

    with pytest.raises(ConfigurationError) as exc_info:
        create_connected_session(servers, watcher, session_factory=factory)

    assert exc_info.value.code is ErrorCode.CONFIG_EMPTY_SERVER_LIST
    assert factory.calls == []


def test_never_connecting_servers_raise_connection_loss() -> None:
    factory = RecordingFactory(InMemoryCoordinationService(unreachable=True))
    watcher = ConnectionWatcher(session_timeout_ms=50)

    with pytest.raises(ConnectionLossError) as exc_info:
        create_connected_session("memory:0", watcher, session_factory=factory)

    assert exc_info.value.code is ErrorCode.CONNECTION_WAIT_TIMEOUT
    assert factory.calls == [("memory:0", 50)]
    assert factory.sessions[0].state is SessionState.CLOSED


def test_state_is_rechecked_after_wait() -> None:
    created: list[DroppedSession] = []

    def factory(servers: str, session_timeout_ms: int, watcher: Watcher) -> DroppedSession:
        session = DroppedSession(servers, session_timeout_ms, watcher)
        created.append(session)
        return session

    watcher = ConnectionWatcher(session_timeout_ms=TEST_TIMEOUT_MS)
    with pytest.raises(ConnectionLossError) as exc_info:
        create_connected_session("memory:0", watcher, session_factory=factory)

    assert exc_info.value.code is ErrorCode.CONNECTION_NOT_CONNECTED
    assert exc_info.value.context["state"] == "DISCONNECTED"
    assert created[0].closed


def test_connected_session_is_returned() -> None:
    service = InMemoryCoordinationService()
    factory = RecordingFactory(service)
    watcher = ConnectionWatcher(session_timeout_ms=TEST_TIMEOUT_MS)

    session = create_connected_session(["memory:0", " memory:1 "], watcher, session_factory=factory)
    try:
        assert session.state is SessionState.CONNECTED
        assert factory.calls == [("memory:0,memory:1", TEST_TIMEOUT_MS)]
        assert session.create("/ready", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT) == "/ready"
    finally:
        session.close()


# =============================================================================
# BACKEND SELECTION
# =============================================================================
def test_session_factory_for_backends() -> None:
    service = InMemoryCoordinationService()
    memory_factory = session_factory_for(SessionConfig(servers=("memory:0",), backend="memory"), service)
    assert memory_factory == service.connect
    assert session_factory_for(SessionConfig(servers=("zk:2181",))) is kazoo_session_factory
    with pytest.raises(ConfigurationError):
        session_factory_for(SessionConfig(servers=("zk:2181",), backend="etcd"))


def test_connect_from_config_uses_memory_backend() -> None:
    service = InMemoryCoordinationService()
    config = SessionConfig(servers=("memory:0",), session_timeout_ms=TEST_TIMEOUT_MS, backend="memory")
    with connect_from_config(config, service) as session:
        assert session.state is SessionState.CONNECTED
        assert session.session_timeout_ms == TEST_TIMEOUT_MS


def test_connect_from_config_rejects_empty_servers() -> None:
    with pytest.raises(ConfigurationError):
        connect_from_config(SessionConfig(servers=(), backend="memory"))
