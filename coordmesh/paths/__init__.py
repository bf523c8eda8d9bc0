"""
Paths module: Optimistic recursive creation of node paths.

Provides:
- create_full_path_optimistic: blocking form
- create_full_path_optimistic_async: callback form over an explicit
  ascension state machine
- acreate_full_path_optimistic: asyncio awaitable
- try_create_full_path: Result-returning blocking form
"""

from coordmesh.paths.ascension import (
    AscensionState,
    AscensionOperation,
    CreateRequest,
    parent_of,
    start_ascension,
)
from coordmesh.paths.creator import (
    create_full_path_optimistic,
    create_full_path_optimistic_async,
    acreate_full_path_optimistic,
    try_create_full_path,
)

__all__ = [
    "AscensionState",
    "AscensionOperation",
    "CreateRequest",
    "parent_of",
    "start_ascension",
    "create_full_path_optimistic",
    "create_full_path_optimistic_async",
    "acreate_full_path_optimistic",
    "try_create_full_path",
]
