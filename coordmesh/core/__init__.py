"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions:
- Result monad for fallible parsing and validation
- ZNodePath with explicit parent(), CreateMode and ACL entries
- Error hierarchy mirroring service status codes
- Configuration management with validation
"""

from coordmesh.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
    ZNodePath,
    CreateMode,
    AclEntry,
    Acl,
    OPEN_ACL_UNSAFE,
    READ_ACL_UNSAFE,
    CREATOR_ALL_ACL,
)
from coordmesh.core.errors import (
    ReturnCode,
    ErrorCode,
    CoordMeshError,
    ConfigurationError,
    InvalidPathError,
    ConnectionLossError,
    NodeError,
    NoNodeError,
    NodeExistsError,
    ServiceError,
)
from coordmesh.core.config import CoordMeshConfig, SessionConfig, ObservabilityConfig

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "ZNodePath",
    "CreateMode",
    "AclEntry",
    "Acl",
    "OPEN_ACL_UNSAFE",
    "READ_ACL_UNSAFE",
    "CREATOR_ALL_ACL",
    "ReturnCode",
    "ErrorCode",
    "CoordMeshError",
    "ConfigurationError",
    "InvalidPathError",
    "ConnectionLossError",
    "NodeError",
    "NoNodeError",
    "NodeExistsError",
    "ServiceError",
    "CoordMeshConfig",
    "SessionConfig",
    "ObservabilityConfig",
]
