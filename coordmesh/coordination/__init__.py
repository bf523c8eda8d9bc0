"""
Coordination module: Session abstraction, backends, and connection setup.

Provides:
- CoordinationSession / Watcher protocols and the CreateResult record
- ConnectionWatcher: event sink with bounded wait-for-connection
- InMemoryCoordinationService: in-process node tree backend
- KazooSession: ZooKeeper backend on top of kazoo
- create_connected_session: connect with double-checked state
"""

from coordmesh.coordination.protocols import (
    SessionState,
    KeeperState,
    EventType,
    WatchedEvent,
    CreateResult,
    CreateCallback,
    CoordinationSession,
    Watcher,
    SessionFactory,
)
from coordmesh.coordination.watcher import ConnectionWatcher
from coordmesh.coordination.memory import (
    InMemoryCoordinationService,
    InMemorySession,
    CreateRecord,
)
from coordmesh.coordination.kazoo_session import KazooSession, kazoo_session_factory
from coordmesh.coordination.connect import (
    create_connected_session,
    session_factory_for,
    connect_from_config,
)

__all__ = [
    "SessionState",
    "KeeperState",
    "EventType",
    "WatchedEvent",
    "CreateResult",
    "CreateCallback",
    "CoordinationSession",
    "Watcher",
    "SessionFactory",
    "ConnectionWatcher",
    "InMemoryCoordinationService",
    "InMemorySession",
    "CreateRecord",
    "KazooSession",
    "kazoo_session_factory",
    "create_connected_session",
    "session_factory_for",
    "connect_from_config",
]
