"""
Error Hierarchy for the Coordination Path Toolkit

Design Principles:
- Expected races (missing ancestor, ancestor already exists) are absorbed
  by the path creator; everything else propagates to the caller
- Service status codes are carried verbatim, never translated
- Carry full error context for debugging and audit trails

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause chain for root cause analysis
- Timestamp for correlation with traces

Usage:
    try:
        create_full_path_optimistic(session, "/a/b/c", b"", OPEN_ACL_UNSAFE,
                                    CreateMode.PERSISTENT)
    except NodeExistsError as e:
        handle_conflict(e.path)
    except NodeError as e:
        handle_service_failure(e.return_code)
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from coordmesh.core.types import Timestamp


# =============================================================================
# SERVICE RETURN CODES
# =============================================================================
class ReturnCode(Enum):
    """
    Status codes reported by the coordination service.

    Values follow the ZooKeeper wire protocol so that codes coming
    from a real ensemble can be carried through unchanged. Integers
    without a named member (AUTH_FAILED -115, SESSION_MOVED -118, ...)
    resolve to a cached pseudo-member that keeps the raw value:

        >>> ReturnCode(-119).value
        -119
    """

    OK = 0
    SYSTEM_ERROR = -1
    CONNECTION_LOSS = -4
    OPERATION_TIMEOUT = -7
    BAD_ARGUMENTS = -8
    NO_NODE = -101
    NO_AUTH = -102
    NO_CHILDREN_FOR_EPHEMERALS = -108
    NODE_EXISTS = -110
    NOT_EMPTY = -111
    SESSION_EXPIRED = -112
    INVALID_ACL = -114

    @property
    def is_ok(self) -> bool:
        return self is ReturnCode.OK

    @property
    def is_other(self) -> bool:
        """True for codes outside {OK, NO_NODE, NODE_EXISTS}."""
        return self not in (ReturnCode.OK, ReturnCode.NO_NODE, ReturnCode.NODE_EXISTS)

    @property
    def is_known(self) -> bool:
        return self._name_ in type(self).__members__

    @classmethod
    def _missing_(cls, value: object) -> Optional[ReturnCode]:
        if not isinstance(value, int) or isinstance(value, bool):
            return None
        pseudo = object.__new__(cls)
        pseudo._name_ = f"UNKNOWN({value})"
        pseudo._value_ = value
        # Cached so identity comparisons hold for repeated lookups
        return cls._value2member_map_.setdefault(value, pseudo)

    @classmethod
    def from_int(cls, value: int) -> ReturnCode:
        """Map a raw integer code; unnamed codes keep their value."""
        return cls(int(value))


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Configuration errors
    - 2xxx: Connection errors
    - 3xxx: Node (create) errors
    - 9xxx: Internal errors
    """

    # Configuration errors (1xxx)
    CONFIG_EMPTY_SERVER_LIST = 1001
    CONFIG_INVALID_VALUE = 1002
    CONFIG_INVALID_PATH = 1003

    # Connection errors (2xxx)
    CONNECTION_WAIT_TIMEOUT = 2001
    CONNECTION_NOT_CONNECTED = 2002
    CONNECTION_BACKEND_UNAVAILABLE = 2003

    # Node errors (3xxx)
    NODE_NO_NODE = 3001
    NODE_EXISTS = 3002
    NODE_SERVICE_ERROR = 3003

    # Internal errors (9xxx)
    INTERNAL_ERROR = 9001


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass(eq=False)
class CoordMeshError(Exception):
    """
    Base class for all toolkit errors.

    Provides:
    - Unique error ID for tracing
    - Error code for programmatic handling
    - Timestamp for correlation
    - Cause chain for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[Exception] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def with_context(self, **kwargs: Any) -> CoordMeshError:
        """Add context to error (returns new instance of the same class)."""
        return dataclasses.replace(self, context={**self.context, **kwargs})

    def to_dict(self) -> dict[str, Any]:
        """Serialize error to dictionary for structured logging."""
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass(eq=False)
class ConfigurationError(CoordMeshError):
    """
    Invalid configuration detected before any I/O.

    Never retried.
    """

    @classmethod
    def empty_server_list(cls) -> ConfigurationError:
        return cls(
            code=ErrorCode.CONFIG_EMPTY_SERVER_LIST,
            message="servers cannot be empty",
        )

    @classmethod
    def invalid_value(cls, name: str, value: Any, reason: str) -> ConfigurationError:
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{name}': {reason}",
            context={"name": name, "value": str(value)[:100], "reason": reason},
        )


@dataclass(eq=False)
class InvalidPathError(ConfigurationError):
    """Malformed node path."""

    @classmethod
    def malformed(cls, path: str, reason: str) -> InvalidPathError:
        return cls(
            code=ErrorCode.CONFIG_INVALID_PATH,
            message=f"Invalid path {path!r}: {reason}",
            context={"path": path, "reason": reason},
        )


# =============================================================================
# CONNECTION ERRORS
# =============================================================================
@dataclass(eq=False)
class ConnectionLossError(CoordMeshError):
    """
    Session failed to reach (or stay in) the connected state.

    Surfaced to the caller, never silently retried.
    """

    @classmethod
    def wait_timed_out(cls, timeout_ms: int) -> ConnectionLossError:
        return cls(
            code=ErrorCode.CONNECTION_WAIT_TIMEOUT,
            message=f"Session not connected within {timeout_ms}ms",
            context={"timeout_ms": timeout_ms},
        )

    @classmethod
    def not_connected(cls, state: str) -> ConnectionLossError:
        return cls(
            code=ErrorCode.CONNECTION_NOT_CONNECTED,
            message=f"Session is {state} after connection wait returned",
            context={"state": state},
        )

    @classmethod
    def backend_unavailable(cls, backend: str, reason: str) -> ConnectionLossError:
        return cls(
            code=ErrorCode.CONNECTION_BACKEND_UNAVAILABLE,
            message=f"Backend '{backend}' unavailable: {reason}",
            context={"backend": backend, "reason": reason},
        )


# =============================================================================
# NODE ERRORS (CREATE PATH)
# =============================================================================
@dataclass(eq=False)
class NodeError(CoordMeshError):
    """
    A create request failed with a non-OK service status.

    Carries the raw service code and the path the request targeted.
    """

    path: str = ""
    return_code: ReturnCode = ReturnCode.SYSTEM_ERROR

    @classmethod
    def from_code(
        cls,
        return_code: ReturnCode,
        path: str,
        cause: Optional[Exception] = None,
    ) -> NodeError:
        """Build the typed error matching a service status code."""
        if return_code is ReturnCode.NO_NODE:
            return NoNodeError.for_path(path, cause=cause)
        if return_code is ReturnCode.NODE_EXISTS:
            return NodeExistsError.for_path(path, cause=cause)
        return ServiceError.for_code(return_code, path, cause=cause)


@dataclass(eq=False)
class NoNodeError(NodeError):
    """An ancestor of the requested path does not exist."""

    @classmethod
    def for_path(cls, path: str, cause: Optional[Exception] = None) -> NoNodeError:
        return cls(
            code=ErrorCode.NODE_NO_NODE,
            message=f"Parent of '{path}' does not exist",
            cause=cause,
            context={"path": path},
            path=path,
            return_code=ReturnCode.NO_NODE,
        )


@dataclass(eq=False)
class NodeExistsError(NodeError):
    """The requested node already exists."""

    @classmethod
    def for_path(cls, path: str, cause: Optional[Exception] = None) -> NodeExistsError:
        return cls(
            code=ErrorCode.NODE_EXISTS,
            message=f"Node '{path}' already exists",
            cause=cause,
            context={"path": path},
            path=path,
            return_code=ReturnCode.NODE_EXISTS,
        )


@dataclass(eq=False)
class ServiceError(NodeError):
    """Any other service status, carried verbatim."""

    @classmethod
    def for_code(
        cls,
        return_code: ReturnCode,
        path: str,
        cause: Optional[Exception] = None,
    ) -> ServiceError:
        return cls(
            code=ErrorCode.NODE_SERVICE_ERROR,
            message=f"Create of '{path}' failed: {return_code.name}",
            cause=cause,
            context={"path": path, "return_code": return_code.value},
            path=path,
            return_code=return_code,
        )
