"""
Coordination Protocol Definitions

Structural subtyping protocols (PEP 544) for the coordination service
client consumed by the path creator and the connection establisher:

- CoordinationSession: create (blocking + callback form), state, timeout
- Watcher: connection event sink with a bounded wait-for-connection
- SessionFactory: builds a session from servers, timeout and watcher

Design Principles:
    - Sessions are shared capability handles; thread-safety is the
      backend's concern, callers add no locking of their own
    - Asynchronous completions are delivered on a single dispatch thread
      per session, in request order
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import (
    Any,
    Callable,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

from coordmesh.core.types import AclEntry, CreateMode
from coordmesh.core.errors import ReturnCode


# =============================================================================
# SESSION STATE
# =============================================================================
class SessionState(Enum):
    """
    Client-visible session liveness.

    Transitions are driven by the service's notifications only.
    """
    CONNECTING = auto()
    CONNECTED = auto()
    DISCONNECTED = auto()
    EXPIRED = auto()
    CLOSED = auto()

    @property
    def is_connected(self) -> bool:
        return self is SessionState.CONNECTED

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.EXPIRED, SessionState.CLOSED)


# =============================================================================
# WATCHED EVENTS
# =============================================================================
class KeeperState(Enum):
    """Connection state carried by a watched event."""
    SYNC_CONNECTED = auto()
    DISCONNECTED = auto()
    EXPIRED = auto()
    AUTH_FAILED = auto()
    CLOSED = auto()


class EventType(Enum):
    """Only session-level events are delivered by this toolkit."""
    NONE = auto()


@dataclass(frozen=True, slots=True)
class WatchedEvent:
    """Notification delivered to a watcher."""
    state: KeeperState
    type: EventType = EventType.NONE
    path: Optional[str] = None


# =============================================================================
# CREATE RESULT
# =============================================================================
@dataclass(frozen=True, slots=True)
class CreateResult:
    """
    Outcome of one asynchronous create request.

    Attributes:
        code: Service status code
        path: Path the request targeted
        ctx: Caller context, threaded through unchanged
        name: Actual created path on success (differs from path for
              sequential modes), None otherwise
        cause: Client exception behind a failed status, when the
               backend raised one
    """
    code: ReturnCode
    path: str
    ctx: Any = None
    name: Optional[str] = None
    cause: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.code is ReturnCode.OK


CreateCallback = Callable[[CreateResult], None]


# =============================================================================
# PROTOCOLS
# =============================================================================
@runtime_checkable
class Watcher(Protocol):
    """Event sink for session notifications."""

    @property
    def session_timeout_ms(self) -> int: ...

    def process(self, event: WatchedEvent) -> None: ...

    def wait_for_connection(self) -> None:
        """Block until connected; raise ConnectionLossError on timeout."""
        ...


@runtime_checkable
class CoordinationSession(Protocol):
    """
    Live handle to the coordination service.

    create() raises NodeError subclasses on non-OK status.
    create_async() never raises for service failures; the callback
    receives exactly one CreateResult on the dispatch thread.
    """

    @property
    def state(self) -> SessionState: ...

    @property
    def session_timeout_ms(self) -> int: ...

    def create(
        self,
        path: str,
        data: bytes,
        acl: Sequence[AclEntry],
        mode: CreateMode,
    ) -> str: ...

    def create_async(
        self,
        path: str,
        data: bytes,
        acl: Sequence[AclEntry],
        mode: CreateMode,
        callback: CreateCallback,
        ctx: Any = None,
    ) -> None: ...

    def close(self) -> None: ...


class SessionFactory(Protocol):
    """Builds a session; the watcher receives its connection events."""

    def __call__(
        self,
        servers: str,
        session_timeout_ms: int,
        watcher: Watcher,
    ) -> CoordinationSession: ...
