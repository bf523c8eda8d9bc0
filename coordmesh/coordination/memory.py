"""
In-Memory Coordination Service
==============================

A linearizable, single-process node tree implementing the session
protocols. Used as the local backend (``COORDMESH_BACKEND=memory``) and
as the test double for the path creator and connection establisher.

Semantics follow the ZooKeeper create contract:
- Creating a node whose parent is missing reports NO_NODE
- Creating an existing node reports NODE_EXISTS
- Ephemeral nodes cannot have children (NO_CHILDREN_FOR_EPHEMERALS)
- Sequential modes append a zero-padded, per-parent counter
- Ephemeral nodes disappear when their session closes or expires

Thread Safety:
--------------
- The tree is guarded by one service-wide lock, so every create is
  atomic with respect to every other create
- Each session owns one dispatch thread that executes asynchronous
  requests and runs their callbacks in request order
"""

from __future__ import annotations

import itertools
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from coordmesh.core import constants as C
from coordmesh.core.types import AclEntry, CreateMode, ZNodePath, Timestamp
from coordmesh.core.errors import ConnectionLossError, NodeError, ReturnCode
from coordmesh.coordination.protocols import (
    CreateCallback,
    CreateResult,
    KeeperState,
    SessionState,
    WatchedEvent,
    Watcher,
)
from coordmesh.observability.logging import StructuredLogger

logger = StructuredLogger(__name__)


# =============================================================================
# TREE STATE
# =============================================================================
@dataclass
class _Node:
    """Stored node."""
    data: bytes
    acl: tuple[AclEntry, ...]
    mode: CreateMode
    owner_session: Optional[int] = None
    created_at: Timestamp = field(default_factory=Timestamp.now)
    children: set[str] = field(default_factory=set)
    cversion: int = 0


@dataclass(frozen=True, slots=True)
class CreateRecord:
    """One create request as the service saw it."""
    session_id: int
    path: str
    data: bytes
    mode: CreateMode
    code: ReturnCode
    name: Optional[str] = None


# Marks the end of a session's dispatch queue
_STOP = object()


class InMemoryCoordinationService:
    """
    In-process coordination service.

    Usage:
        service = InMemoryCoordinationService()
        watcher = ConnectionWatcher(session_timeout_ms=1000)
        session = create_connected_session("memory:0", watcher,
                                           session_factory=service.connect)

    Attributes:
        unreachable: when True new sessions never connect
    """

    def __init__(self, unreachable: bool = False) -> None:
        self.unreachable = unreachable
        self._lock = threading.RLock()
        self._nodes: dict[str, _Node] = {
            C.ROOT_PATH: _Node(data=b"", acl=(), mode=CreateMode.PERSISTENT),
        }
        self._sessions: dict[int, InMemorySession] = {}
        self._session_ids = itertools.count(1)
        self._injected: dict[str, list[ReturnCode]] = {}
        self._history: list[CreateRecord] = []

    # -------------------------------------------------------------------------
    # SESSION MANAGEMENT
    # -------------------------------------------------------------------------

    def connect(
        self,
        servers: str,
        session_timeout_ms: int,
        watcher: Watcher,
    ) -> InMemorySession:
        """Open a session; matches the SessionFactory protocol."""
        with self._lock:
            session = InMemorySession(
                service=self,
                session_id=next(self._session_ids),
                servers=servers,
                session_timeout_ms=session_timeout_ms,
                watcher=watcher,
            )
            self._sessions[session.session_id] = session

        if not self.unreachable:
            session._transition(SessionState.CONNECTED, KeeperState.SYNC_CONNECTED)
        return session

    def expire_session(self, session: InMemorySession) -> None:
        """Expire a session as the ensemble would after a missed timeout."""
        self._drop_session(session.session_id)
        session._transition(SessionState.EXPIRED, KeeperState.EXPIRED)

    def disconnect(self, session: InMemorySession) -> None:
        """Simulate losing the connection without losing the session."""
        session._transition(SessionState.DISCONNECTED, KeeperState.DISCONNECTED)

    def reconnect(self, session: InMemorySession) -> None:
        session._transition(SessionState.CONNECTED, KeeperState.SYNC_CONNECTED)

    def _drop_session(self, session_id: int) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
            owned = [
                path for path, node in self._nodes.items()
                if node.owner_session == session_id
            ]
            # Deepest first so parents never outlive bookkeeping of children
            for path in sorted(owned, key=len, reverse=True):
                self._remove(path)

    # -------------------------------------------------------------------------
    # FAULT INJECTION
    # -------------------------------------------------------------------------

    def fail_next_create(self, path: str, code: ReturnCode, times: int = 1) -> None:
        """Make the next `times` creates of `path` report `code`."""
        with self._lock:
            self._injected.setdefault(path, []).extend([code] * times)

    # -------------------------------------------------------------------------
    # TREE OPERATIONS
    # -------------------------------------------------------------------------

    def _create(
        self,
        session_id: int,
        path: str,
        data: bytes,
        acl: Sequence[AclEntry],
        mode: CreateMode,
    ) -> tuple[ReturnCode, Optional[str]]:
        with self._lock:
            code, name = self._create_locked(session_id, path, data, acl, mode)
            self._history.append(CreateRecord(
                session_id=session_id,
                path=path,
                data=bytes(data),
                mode=mode,
                code=code,
                name=name,
            ))
        return code, name

    def _create_locked(
        self,
        session_id: int,
        path: str,
        data: bytes,
        acl: Sequence[AclEntry],
        mode: CreateMode,
    ) -> tuple[ReturnCode, Optional[str]]:
        injected = self._injected.get(path)
        if injected:
            return injected.pop(0), None

        parsed = ZNodePath.parse(path)
        if parsed.is_err():
            return ReturnCode.BAD_ARGUMENTS, None
        node_path = parsed.unwrap()
        if node_path.is_root:
            return ReturnCode.NODE_EXISTS, None
        if not acl:
            return ReturnCode.INVALID_ACL, None

        parent_key = node_path.parent_or_root().value
        parent = self._nodes.get(parent_key)
        if parent is None:
            return ReturnCode.NO_NODE, None
        if parent.mode.is_ephemeral:
            return ReturnCode.NO_CHILDREN_FOR_EPHEMERALS, None

        name = node_path.value
        if mode.is_sequential:
            name = f"{name}{parent.cversion:0{C.SEQUENCE_SUFFIX_WIDTH}d}"
        if name in self._nodes:
            return ReturnCode.NODE_EXISTS, None

        self._nodes[name] = _Node(
            data=bytes(data),
            acl=tuple(acl),
            mode=mode,
            owner_session=session_id if mode.is_ephemeral else None,
        )
        parent.children.add(name.rsplit(C.PATH_SEPARATOR, 1)[-1])
        parent.cversion += 1
        return ReturnCode.OK, name

    def _remove(self, path: str) -> None:
        node = self._nodes.pop(path)
        parent = self._nodes.get(ZNodePath(path).parent_or_root().value)
        if parent is not None:
            parent.children.discard(path.rsplit(C.PATH_SEPARATOR, 1)[-1])
            parent.cversion += 1
        del node

    def delete(self, path: str) -> None:
        """
        Delete a childless node.

        Raises:
            NodeError: NO_NODE if missing, NOT_EMPTY if it has children
        """
        with self._lock:
            node = self._nodes.get(path)
            if node is None or path == C.ROOT_PATH:
                raise NodeError.from_code(ReturnCode.NO_NODE, path)
            if node.children:
                raise NodeError.from_code(ReturnCode.NOT_EMPTY, path)
            self._remove(path)

    def exists(self, path: str) -> bool:
        with self._lock:
            return path in self._nodes

    def get_data(self, path: str) -> bytes:
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                raise NodeError.from_code(ReturnCode.NO_NODE, path)
            return node.data

    def get_acl(self, path: str) -> tuple[AclEntry, ...]:
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                raise NodeError.from_code(ReturnCode.NO_NODE, path)
            return node.acl

    def get_mode(self, path: str) -> CreateMode:
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                raise NodeError.from_code(ReturnCode.NO_NODE, path)
            return node.mode

    def get_children(self, path: str) -> list[str]:
        with self._lock:
            node = self._nodes.get(path)
            if node is None:
                raise NodeError.from_code(ReturnCode.NO_NODE, path)
            return sorted(node.children)

    @property
    def history(self) -> list[CreateRecord]:
        """Every create request seen so far, in service order."""
        with self._lock:
            return list(self._history)

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()


# =============================================================================
# SESSION
# =============================================================================
class InMemorySession:
    """
    Session handle onto an InMemoryCoordinationService.

    Requests issued through create_async() are executed on this
    session's dispatch thread; the callback runs right after its request,
    so a callback that issues a further request queues it behind every
    request already pending.
    """

    def __init__(
        self,
        service: InMemoryCoordinationService,
        session_id: int,
        servers: str,
        session_timeout_ms: int,
        watcher: Watcher,
    ) -> None:
        self._service = service
        self._session_id = session_id
        self._servers = servers
        self._session_timeout_ms = session_timeout_ms
        self._watcher = watcher
        self._state = SessionState.CONNECTING
        self._state_lock = threading.Lock()
        self._queue: queue.Queue[Any] = queue.Queue()
        self._stopped = threading.Event()
        # Guards enqueueing against the dispatcher exiting
        self._accept_lock = threading.Lock()
        self._exited = threading.Event()
        self._dispatcher = threading.Thread(
            target=self._dispatch_loop,
            name=f"coordmesh-dispatch-{session_id}",
            daemon=True,
        )
        self._dispatcher.start()

    @property
    def session_id(self) -> int:
        return self._session_id

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_timeout_ms(self) -> int:
        return self._session_timeout_ms

    @property
    def dispatch_thread(self) -> threading.Thread:
        return self._dispatcher

    # -------------------------------------------------------------------------
    # CREATE
    # -------------------------------------------------------------------------

    def create(
        self,
        path: str,
        data: bytes,
        acl: Sequence[AclEntry],
        mode: CreateMode,
    ) -> str:
        """
        Blocking create.

        Returns:
            The created node's path

        Raises:
            NodeError: NoNodeError, NodeExistsError or ServiceError
        """
        code, name = self._execute(path, data, acl, mode)
        # name is only set when the create succeeded
        if name is None:
            raise NodeError.from_code(code, path)
        return name

    def create_async(
        self,
        path: str,
        data: bytes,
        acl: Sequence[AclEntry],
        mode: CreateMode,
        callback: CreateCallback,
        ctx: Any = None,
    ) -> None:
        """
        Queue a create; callback receives one CreateResult.

        Raises:
            ConnectionLossError: the dispatch thread has already exited
        """
        if not self._accept((path, bytes(data), tuple(acl), mode, callback, ctx)):
            raise ConnectionLossError.not_connected(SessionState.CLOSED.name)

    def _execute(
        self,
        path: str,
        data: bytes,
        acl: Sequence[AclEntry],
        mode: CreateMode,
    ) -> tuple[ReturnCode, Optional[str]]:
        state = self._state
        if state is SessionState.EXPIRED:
            return ReturnCode.SESSION_EXPIRED, None
        if not state.is_connected:
            return ReturnCode.CONNECTION_LOSS, None
        return self._service._create(self._session_id, path, data, acl, mode)

    # -------------------------------------------------------------------------
    # DISPATCH
    # -------------------------------------------------------------------------

    def _dispatch_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            self._run(item)

        # Drain requests chained from callbacks or queued while closing
        while True:
            with self._accept_lock:
                try:
                    item = self._queue.get_nowait()
                except queue.Empty:
                    self._exited.set()
                    return
            if item is not _STOP:
                self._run(item)

    def _accept(self, item: Any) -> bool:
        with self._accept_lock:
            if self._exited.is_set():
                return False
            self._queue.put(item)
            return True

    def _run(self, item: Any) -> None:
        if isinstance(item, WatchedEvent):
            self._watcher.process(item)
            return
        if isinstance(item, threading.Event):
            item.set()
            return

        path, data, acl, mode, callback, ctx = item
        code, name = self._execute(path, data, acl, mode)
        try:
            callback(CreateResult(code=code, path=path, ctx=ctx, name=name))
        except Exception as e:
            logger.error(f"Create callback raised: {e}", node_path=path)

    def _transition(self, state: SessionState, event_state: KeeperState) -> None:
        with self._state_lock:
            if self._state.is_terminal:
                return
            self._state = state
        if not self._stopped.is_set():
            self._queue.put(WatchedEvent(state=event_state))

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until every request queued so far has completed."""
        done = threading.Event()
        if not self._accept(done):
            return True
        return done.wait(timeout)

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the session, removing its ephemeral nodes. Idempotent."""
        with self._state_lock:
            if self._state is SessionState.CLOSED:
                return
            already_terminal = self._state.is_terminal
            self._state = SessionState.CLOSED
        if not already_terminal:
            self._service._drop_session(self._session_id)

        self._queue.put(_STOP)
        self._stopped.set()
        if threading.current_thread() is not self._dispatcher:
            self._dispatcher.join(C.DISPATCH_JOIN_TIMEOUT_S)

    def __enter__(self) -> InMemorySession:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"InMemorySession(id={self._session_id}, "
            f"servers={self._servers!r}, state={self._state.name})"
        )
