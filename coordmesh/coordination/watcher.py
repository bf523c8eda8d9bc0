"""
Connection Watcher: Session Event Sink with Bounded Wait

Receives session notifications from any backend and exposes a
blocking wait-for-connection primitive bounded by the session timeout.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from coordmesh.core import constants as C
from coordmesh.core.config import SessionConfig
from coordmesh.core.errors import ConfigurationError, ConnectionLossError
from coordmesh.coordination.protocols import KeeperState, WatchedEvent
from coordmesh.observability.logging import StructuredLogger

logger = StructuredLogger(__name__)


class ConnectionWatcher:
    """
    Watcher that tracks whether the session is connected.

    SYNC_CONNECTED sets the connected flag; DISCONNECTED, EXPIRED,
    AUTH_FAILED and CLOSED clear it. wait_for_connection() blocks for at
    most the session timeout (or the explicit connect_timeout_ms).

    Usage:
        watcher = ConnectionWatcher(session_timeout_ms=5000)
        session = create_connected_session("zk1:2181", watcher)
    """

    __slots__ = ("_session_timeout_ms", "_connect_timeout_ms", "_connected", "_listeners", "_last_state")

    def __init__(
        self,
        session_timeout_ms: int = C.DEFAULT_SESSION_TIMEOUT_MS,
        connect_timeout_ms: Optional[int] = None,
    ) -> None:
        if session_timeout_ms < C.MIN_SESSION_TIMEOUT_MS:
            raise ConfigurationError.invalid_value(
                "session_timeout_ms", session_timeout_ms, "must be positive"
            )
        self._session_timeout_ms = session_timeout_ms
        self._connect_timeout_ms = connect_timeout_ms or session_timeout_ms
        self._connected = threading.Event()
        self._listeners: list[Callable[[WatchedEvent], None]] = []
        self._last_state: Optional[KeeperState] = None

    @classmethod
    def from_config(cls, config: SessionConfig) -> ConnectionWatcher:
        return cls(session_timeout_ms=config.session_timeout_ms)

    @property
    def session_timeout_ms(self) -> int:
        return self._session_timeout_ms

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    @property
    def last_state(self) -> Optional[KeeperState]:
        return self._last_state

    def add_listener(self, listener: Callable[[WatchedEvent], None]) -> None:
        """Register a callback invoked after each processed event."""
        self._listeners.append(listener)

    def process(self, event: WatchedEvent) -> None:
        """Handle a session notification."""
        self._last_state = event.state
        if event.state is KeeperState.SYNC_CONNECTED:
            self._connected.set()
        else:
            self._connected.clear()

        logger.debug("Session event", keeper_state=event.state.name)

        for listener in self._listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Watcher listener failed: {e}")

    def wait_for_connection(self) -> None:
        """
        Block until the session reports connected.

        Raises:
            ConnectionLossError: if the timeout elapses first
        """
        if not self._connected.wait(self._connect_timeout_ms / C.SECOND_MS):
            raise ConnectionLossError.wait_timed_out(self._connect_timeout_ms)
