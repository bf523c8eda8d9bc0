"""
Coordination Path Toolkit

Helpers for clients of a hierarchical coordination service
(ZooKeeper-style node tree with sessions):
- Optimistic Full-Path Creation: create a node and, only when needed,
  its missing ancestors; safe under concurrent creators
- Connection Establisher: build a session, wait (bounded) for it to
  connect, and re-check its state before handing it out

Backends:
- zookeeper: kazoo client (optional dependency)
- memory: in-process node tree for local runs and tests

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from coordmesh.core.types import (
    Result,
    Ok,
    Err,
    ZNodePath,
    CreateMode,
    AclEntry,
    OPEN_ACL_UNSAFE,
    READ_ACL_UNSAFE,
    CREATOR_ALL_ACL,
)
from coordmesh.core.errors import (
    ReturnCode,
    CoordMeshError,
    ConfigurationError,
    ConnectionLossError,
    NodeError,
    NoNodeError,
    NodeExistsError,
    ServiceError,
)
from coordmesh.core.config import CoordMeshConfig, SessionConfig

# Coordination exports
from coordmesh.coordination import (
    SessionState,
    CreateResult,
    CoordinationSession,
    ConnectionWatcher,
    InMemoryCoordinationService,
    KazooSession,
    create_connected_session,
    connect_from_config,
)

# Path creation exports
from coordmesh.paths import (
    create_full_path_optimistic,
    create_full_path_optimistic_async,
    acreate_full_path_optimistic,
    try_create_full_path,
)

__all__ = [
    # Version
    "__version__",
    # Core types
    "Result",
    "Ok",
    "Err",
    "ZNodePath",
    "CreateMode",
    "AclEntry",
    "OPEN_ACL_UNSAFE",
    "READ_ACL_UNSAFE",
    "CREATOR_ALL_ACL",
    # Errors
    "ReturnCode",
    "CoordMeshError",
    "ConfigurationError",
    "ConnectionLossError",
    "NodeError",
    "NoNodeError",
    "NodeExistsError",
    "ServiceError",
    # Config
    "CoordMeshConfig",
    "SessionConfig",
    # Coordination
    "SessionState",
    "CreateResult",
    "CoordinationSession",
    "ConnectionWatcher",
    "InMemoryCoordinationService",
    "KazooSession",
    "create_connected_session",
    "connect_from_config",
    # Paths
    "create_full_path_optimistic",
    "create_full_path_optimistic_async",
    "acreate_full_path_optimistic",
    "try_create_full_path",
]
