"""
System-Wide Constants for the Coordination Path Toolkit

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# TIME UNITS
# =============================================================================
MS: Final[int] = 1
SECOND_MS: Final[int] = 1000


# =============================================================================
# PATH SYNTAX
# =============================================================================
PATH_SEPARATOR: Final[str] = "/"
ROOT_PATH: Final[str] = "/"

# Width of the zero-padded counter appended to sequential node names
SEQUENCE_SUFFIX_WIDTH: Final[int] = 10

# =============================================================================
# SESSION
# =============================================================================
DEFAULT_SESSION_TIMEOUT_MS: Final[int] = 10 * SECOND_MS
MIN_SESSION_TIMEOUT_MS: Final[int] = 1 * MS
DEFAULT_BACKEND: Final[str] = "zookeeper"
SUPPORTED_BACKENDS: Final[tuple[str, ...]] = ("zookeeper", "memory")

# Upper bound on waiting for a dispatch thread to drain on close
DISPATCH_JOIN_TIMEOUT_S: Final[float] = 5.0

# =============================================================================
# ACL PERMISSION BITS
# =============================================================================
PERM_READ: Final[int] = 1 << 0
PERM_WRITE: Final[int] = 1 << 1
PERM_CREATE: Final[int] = 1 << 2
PERM_DELETE: Final[int] = 1 << 3
PERM_ADMIN: Final[int] = 1 << 4
PERM_ALL: Final[int] = PERM_READ | PERM_WRITE | PERM_CREATE | PERM_DELETE | PERM_ADMIN
