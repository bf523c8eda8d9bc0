"""
Core Type Definitions for the Coordination Path Toolkit

Implements the Result/Either monad used for fallible parsing and
configuration, plus the value types shared by every component:

- ZNodePath: validated slash-delimited node path with explicit parent()
- CreateMode: node creation modes (persistent / ephemeral / sequential)
- AclEntry: opaque access-control entry passed through unchanged
- Timestamp: nanosecond timestamp used for error correlation

Design Principles:
- Never use null for absence of a creatable parent (parent() -> Optional)
- Parsing returns Result; constructors raise on invalid input
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Callable,
    Generic,
    Literal,
    Optional,
    TypeVar,
    Union,
)

from coordmesh.core import constants as C

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transform result type


# =============================================================================
# RESULT MONAD
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Success variant of Result monad."""

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        """Apply transformation to success value."""
        return Ok(fn(self.value))

    def flat_map(self, fn: Callable[[T], Result[U, E]]) -> Result[U, E]:
        """Monadic bind for chaining fallible operations."""
        return fn(self.value)

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Carries the error value unchanged through map/flat_map chains.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        return self

    def flat_map(self, fn: Callable[[Any], Result[U, E]]) -> Err[E]:
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# TIMESTAMP WITH NANOSECOND PRECISION
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    High-precision timestamp for event ordering.

    Stores nanoseconds since Unix epoch.
    """

    nanos: int

    @classmethod
    def now(cls) -> Timestamp:
        return cls(nanos=time.time_ns())

    def __repr__(self) -> str:
        return f"Timestamp({self.nanos}ns)"


# =============================================================================
# NODE PATH
# =============================================================================
_RESERVED_COMPONENTS = frozenset({".", ".."})


def _validate_path(value: str) -> Optional[str]:
    """Return a reason string when value is not a valid node path."""
    if not isinstance(value, str) or not value:
        return "path must be a non-empty string"
    if not value.startswith(C.PATH_SEPARATOR):
        return "path must start with '/'"
    if value == C.ROOT_PATH:
        return None
    if value.endswith(C.PATH_SEPARATOR):
        return "path must not end with '/'"
    if "\x00" in value:
        return "path must not contain null characters"
    for component in value[1:].split(C.PATH_SEPARATOR):
        if not component:
            return "path must not contain empty components"
        if component in _RESERVED_COMPONENTS:
            return f"relative component '{component}' not allowed"
    return None


@dataclass(frozen=True, slots=True, order=True)
class ZNodePath:
    """
    Rooted, slash-delimited node path.

    Invariant: the parent of a path is the path with its final component
    removed. The root has no parent, and neither does a top-level node:
    its parent would be the root, which always exists and is never
    created during ascension.

    Usage:
        path = ZNodePath("/ledgers/00/0001")
        path.parent()         # ZNodePath("/ledgers/00")
        ZNodePath("/a").parent()  # None
    """

    value: str

    def __post_init__(self) -> None:
        reason = _validate_path(self.value)
        if reason is not None:
            # Imported here: errors depends on types for Timestamp
            from coordmesh.core.errors import InvalidPathError
            raise InvalidPathError.malformed(str(self.value), reason)

    @classmethod
    def parse(cls, value: str) -> Result[ZNodePath, str]:
        """
        Parse a node path.

        Returns:
            Ok[ZNodePath]: Valid path
            Err[str]: Validation error message
        """
        reason = _validate_path(value)
        if reason is not None:
            return Err(f"Invalid path {value!r}: {reason}")
        return Ok(cls(value))

    @classmethod
    def root(cls) -> ZNodePath:
        return cls(C.ROOT_PATH)

    @property
    def is_root(self) -> bool:
        return self.value == C.ROOT_PATH

    @property
    def components(self) -> tuple[str, ...]:
        """Path components from the top down; empty for the root."""
        if self.is_root:
            return ()
        return tuple(self.value[1:].split(C.PATH_SEPARATOR))

    @property
    def name(self) -> str:
        """Final component, empty for the root."""
        return self.value.rsplit(C.PATH_SEPARATOR, 1)[-1]

    @property
    def depth(self) -> int:
        return len(self.components)

    def parent(self) -> Optional[ZNodePath]:
        """
        Creatable parent of this path.

        Returns None at the root and for top-level nodes, which is the
        terminal case for ascension.
        """
        last_slash = self.value.rfind(C.PATH_SEPARATOR)
        if last_slash <= 0:
            return None
        return ZNodePath(self.value[:last_slash])

    def parent_or_root(self) -> ZNodePath:
        """Parent path including the root, for tree bookkeeping."""
        parent = self.parent()
        if parent is None:
            return ZNodePath.root()
        return parent

    def ancestors(self) -> list[ZNodePath]:
        """Creatable ancestors from the top down, excluding self."""
        chain: list[ZNodePath] = []
        current = self.parent()
        while current is not None:
            chain.append(current)
            current = current.parent()
        chain.reverse()
        return chain

    def child(self, name: str) -> ZNodePath:
        if self.is_root:
            return ZNodePath(C.PATH_SEPARATOR + name)
        return ZNodePath(self.value + C.PATH_SEPARATOR + name)

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"ZNodePath({self.value!r})"


# =============================================================================
# CREATION MODE
# =============================================================================
class CreateMode(Enum):
    """
    Node creation modes.

    Ephemeral nodes live as long as the creating session and may never
    have children. Sequential nodes get a monotonically increasing,
    zero-padded suffix assigned by the service.
    """

    PERSISTENT = "persistent"
    EPHEMERAL = "ephemeral"
    PERSISTENT_SEQUENTIAL = "persistent_sequential"
    EPHEMERAL_SEQUENTIAL = "ephemeral_sequential"

    @property
    def is_ephemeral(self) -> bool:
        return self in (CreateMode.EPHEMERAL, CreateMode.EPHEMERAL_SEQUENTIAL)

    @property
    def is_sequential(self) -> bool:
        return self in (CreateMode.PERSISTENT_SEQUENTIAL, CreateMode.EPHEMERAL_SEQUENTIAL)


# =============================================================================
# ACCESS CONTROL
# =============================================================================
@dataclass(frozen=True, slots=True)
class AclEntry:
    """
    Single access-control entry.

    Treated as opaque by the path creator; only backends interpret it.
    """

    perms: int
    scheme: str
    id: str

    def __repr__(self) -> str:
        return f"AclEntry({self.scheme}:{self.id}, perms={self.perms:#x})"


Acl = tuple[AclEntry, ...]

OPEN_ACL_UNSAFE: Acl = (AclEntry(C.PERM_ALL, "world", "anyone"),)
READ_ACL_UNSAFE: Acl = (AclEntry(C.PERM_READ, "world", "anyone"),)
CREATOR_ALL_ACL: Acl = (AclEntry(C.PERM_ALL, "auth", ""),)
