"""
ZooKeeper Session via kazoo
===========================

Adapter implementing the CoordinationSession protocol on top of the
kazoo client. kazoo is imported lazily so that the in-memory backend
and the path creator work without it.

Mapping:
- kazoo connection states -> SessionState / KeeperState events
    CONNECTED -> CONNECTED / SYNC_CONNECTED
    SUSPENDED -> DISCONNECTED / DISCONNECTED
    LOST      -> EXPIRED / EXPIRED (CONNECTING before the first connect)
- kazoo exceptions -> ReturnCode, carried through NodeError.from_code();
  unlisted ZookeeperError codes pass through with their raw value
- create_async -> IAsyncResult.rawlink, so completions run on kazoo's
  single callback thread in request order
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Optional, Sequence

from coordmesh.core import constants as C
from coordmesh.core.types import AclEntry, CreateMode
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

if TYPE_CHECKING:
    from kazoo.client import KazooClient

logger = StructuredLogger(__name__)

_INSTALL_HINT = "kazoo package not installed: pip install kazoo"


def _default_client_factory(hosts: str, timeout_s: float) -> "KazooClient":
    try:
        from kazoo.client import KazooClient
    except ImportError as e:
        raise ConnectionLossError.backend_unavailable("zookeeper", _INSTALL_HINT) from e
    return KazooClient(hosts=hosts, timeout=timeout_s)


def return_code_for(exc: BaseException) -> ReturnCode:
    """Map a kazoo exception onto the service status code it reports."""
    from kazoo import exceptions as kz

    table: tuple[tuple[type, ReturnCode], ...] = (
        (kz.NoNodeError, ReturnCode.NO_NODE),
        (kz.NodeExistsError, ReturnCode.NODE_EXISTS),
        (kz.NoChildrenForEphemeralsError, ReturnCode.NO_CHILDREN_FOR_EPHEMERALS),
        (kz.NotEmptyError, ReturnCode.NOT_EMPTY),
        # ConnectionClosedError subclasses SessionExpiredError
        (kz.ConnectionClosedError, ReturnCode.CONNECTION_LOSS),
        (kz.SessionExpiredError, ReturnCode.SESSION_EXPIRED),
        (kz.ConnectionLoss, ReturnCode.CONNECTION_LOSS),
        (kz.OperationTimeoutError, ReturnCode.OPERATION_TIMEOUT),
        (kz.BadArgumentsError, ReturnCode.BAD_ARGUMENTS),
        (kz.NoAuthError, ReturnCode.NO_AUTH),
        (kz.InvalidACLError, ReturnCode.INVALID_ACL),
    )
    for exc_type, code in table:
        if isinstance(exc, exc_type):
            return code
    # Every other ZookeeperError carries its wire code
    if isinstance(exc, kz.ZookeeperError) and isinstance(getattr(exc, "code", None), int):
        return ReturnCode.from_int(exc.code)
    return ReturnCode.SYSTEM_ERROR


def _to_kazoo_acl(acl: Sequence[AclEntry]) -> list[Any]:
    from kazoo.security import ACL, Id

    return [ACL(entry.perms, Id(entry.scheme, entry.id)) for entry in acl]


class KazooSession:
    """
    CoordinationSession backed by a kazoo client.

    The constructor starts connecting without blocking; pair it with
    create_connected_session() to wait for the connected state.

    Args:
        servers: ZooKeeper connect string ("host:port,host:port[/chroot]")
        session_timeout_ms: Requested session timeout
        watcher: Receives connection events
        client_factory: Builds the kazoo client from (hosts, timeout_s)
    """

    __slots__ = ("_client", "_servers", "_session_timeout_ms", "_watcher", "_ever_connected", "_closed")

    def __init__(
        self,
        servers: str,
        session_timeout_ms: int,
        watcher: Watcher,
        client_factory: Optional[Callable[[str, float], Any]] = None,
    ) -> None:
        factory = client_factory or _default_client_factory
        self._servers = servers
        self._session_timeout_ms = session_timeout_ms
        self._watcher = watcher
        self._ever_connected = False
        self._closed = False
        self._client = factory(servers, session_timeout_ms / C.SECOND_MS)
        self._client.add_listener(self._on_state_change)
        self._client.start_async()

    @property
    def client(self) -> Any:
        """Underlying kazoo client."""
        return self._client

    @property
    def session_timeout_ms(self) -> int:
        return self._session_timeout_ms

    @property
    def state(self) -> SessionState:
        """Current state read straight from the kazoo client."""
        from kazoo.protocol.states import KazooState

        if self._closed:
            return SessionState.CLOSED
        current = self._client.state
        if current == KazooState.CONNECTED:
            return SessionState.CONNECTED
        if current == KazooState.SUSPENDED:
            return SessionState.DISCONNECTED
        if self._ever_connected:
            return SessionState.EXPIRED
        return SessionState.CONNECTING

    def _on_state_change(self, state: Any) -> None:
        # Runs on kazoo's connection thread; must not block
        from kazoo.protocol.states import KazooState

        if state == KazooState.CONNECTED:
            self._ever_connected = True
            event_state = KeeperState.SYNC_CONNECTED
        elif state == KazooState.SUSPENDED:
            event_state = KeeperState.DISCONNECTED
        else:
            event_state = KeeperState.CLOSED if self._closed else KeeperState.EXPIRED
        self._watcher.process(WatchedEvent(state=event_state))

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

        Raises:
            NodeError: NoNodeError, NodeExistsError or ServiceError
        """
        from kazoo.exceptions import KazooException

        try:
            return self._client.create(
                path,
                value=bytes(data),
                acl=_to_kazoo_acl(acl),
                ephemeral=mode.is_ephemeral,
                sequence=mode.is_sequential,
            )
        except KazooException as e:
            raise NodeError.from_code(return_code_for(e), path, cause=e) from e

    def create_async(
        self,
        path: str,
        data: bytes,
        acl: Sequence[AclEntry],
        mode: CreateMode,
        callback: CreateCallback,
        ctx: Any = None,
    ) -> None:
        """Issue a create; callback receives one CreateResult."""
        async_result = self._client.create_async(
            path,
            value=bytes(data),
            acl=_to_kazoo_acl(acl),
            ephemeral=mode.is_ephemeral,
            sequence=mode.is_sequential,
        )

        def _complete(result: Any) -> None:
            try:
                name = result.get()
            except Exception as e:
                create_result = CreateResult(code=return_code_for(e), path=path, ctx=ctx, cause=e)
            else:
                create_result = CreateResult(code=ReturnCode.OK, path=path, ctx=ctx, name=name)
            try:
                callback(create_result)
            except Exception as e:
                logger.error(f"Create callback raised: {e}", node_path=path)

        async_result.rawlink(_complete)

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Stop and release the kazoo client. Idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            self._client.stop()
        finally:
            self._client.close()

    def __enter__(self) -> KazooSession:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"KazooSession(servers={self._servers!r})"


def kazoo_session_factory(
    servers: str,
    session_timeout_ms: int,
    watcher: Watcher,
) -> KazooSession:
    """SessionFactory building kazoo-backed sessions."""
    return KazooSession(servers, session_timeout_ms, watcher)
