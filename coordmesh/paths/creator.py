"""
Optimistic Full-Path Creation

Creates a node whose ancestors may be missing. The leaf is attempted
first; ancestors are only created when the attempt reports NO_NODE.
Concurrent creators racing on the same ancestors are tolerated:
NODE_EXISTS on an ancestor counts as success, NODE_EXISTS on the
requested path is reported to the caller.

Entry points:
- create_full_path_optimistic: blocking, raises NodeError subclasses
- create_full_path_optimistic_async: callback-driven, never blocks
- acreate_full_path_optimistic: asyncio awaitable over the callback form
- try_create_full_path: blocking form returning a Result
"""

from __future__ import annotations

import asyncio
from typing import Any, Sequence

from coordmesh.core.types import AclEntry, CreateMode, Result, Ok, Err
from coordmesh.core.errors import CoordMeshError, NodeError, NodeExistsError, NoNodeError
from coordmesh.coordination.protocols import CoordinationSession, CreateCallback, CreateResult
from coordmesh.observability.logging import StructuredLogger
from coordmesh.observability.tracing import Tracer
from coordmesh.paths.ascension import (
    ASCENSION_STEPS,
    CREATE_ATTEMPTS,
    parent_of,
    start_ascension,
)

logger = StructuredLogger(__name__)


# =============================================================================
# BLOCKING FORM
# =============================================================================
def create_full_path_optimistic(
    session: CoordinationSession,
    path: str,
    data: bytes,
    acl: Sequence[AclEntry],
    mode: CreateMode,
) -> str:
    """
    Create path, creating missing ancestors as needed.

    Ancestors are created PERSISTENT with empty data and the same ACL.
    After the ancestors are in place the leaf is retried exactly once;
    a failure of that retry (even another NO_NODE) propagates.

    Returns:
        The created node's path (with the sequence suffix, if any)

    Raises:
        NoNodeError: path has no creatable parent; the original error
        NodeExistsError: path itself already exists
        NodeError: any other service failure, for the leaf or an ancestor
    """
    with Tracer.get_instance().start_span(
        "create_full_path_optimistic",
        {"path": path, "mode": mode.value},
    ) as span:
        name = _create_optimistic(session, path, bytes(data), tuple(acl), mode)
        span.set_attribute("created", name)
        return name


def _create_optimistic(
    session: CoordinationSession,
    path: str,
    data: bytes,
    acl: tuple[AclEntry, ...],
    mode: CreateMode,
) -> str:
    try:
        return _attempt(session, path, data, acl, mode)
    except NoNodeError:
        parent = parent_of(path)
        if parent is None:
            raise

    ASCENSION_STEPS.inc(form="sync")
    logger.debug("Parent missing, ascending", node_path=path, parent_path=parent)
    try:
        _create_optimistic(session, parent, b"", acl, CreateMode.PERSISTENT)
    except NodeExistsError:
        logger.debug("Ancestor created concurrently", node_path=parent)

    return _attempt(session, path, data, acl, mode)


def _attempt(
    session: CoordinationSession,
    path: str,
    data: bytes,
    acl: tuple[AclEntry, ...],
    mode: CreateMode,
) -> str:
    try:
        name = session.create(path, data, acl, mode)
    except NodeError as e:
        CREATE_ATTEMPTS.inc(code=e.return_code.name, form="sync")
        raise
    CREATE_ATTEMPTS.inc(code="OK", form="sync")
    return name


def try_create_full_path(
    session: CoordinationSession,
    path: str,
    data: bytes,
    acl: Sequence[AclEntry],
    mode: CreateMode,
) -> Result[str, CoordMeshError]:
    """Blocking form returning Ok(created path) or Err(error)."""
    try:
        return Ok(create_full_path_optimistic(session, path, data, acl, mode))
    except CoordMeshError as e:
        return Err(e)


# =============================================================================
# CALLBACK FORM
# =============================================================================
def create_full_path_optimistic_async(
    session: CoordinationSession,
    path: str,
    data: bytes,
    acl: Sequence[AclEntry],
    mode: CreateMode,
    callback: CreateCallback,
    ctx: Any = None,
) -> None:
    """
    Non-blocking full-path create.

    callback is invoked exactly once on the session's dispatch thread
    with a CreateResult carrying ctx unchanged. Any status other than
    NO_NODE is forwarded verbatim. When an ancestor fails with a status
    other than OK or NODE_EXISTS, the result names the ancestor's path.
    """
    start_ascension(session, path, data, acl, mode, callback, ctx)


# =============================================================================
# ASYNCIO BRIDGE
# =============================================================================
def _settle(future: asyncio.Future[CreateResult], result: CreateResult) -> None:
    if not future.done():
        future.set_result(result)


async def acreate_full_path_optimistic(
    session: CoordinationSession,
    path: str,
    data: bytes,
    acl: Sequence[AclEntry],
    mode: CreateMode,
) -> str:
    """
    Await a full-path create without blocking the event loop.

    Returns:
        The created node's path

    Raises:
        NodeError: typed error for the non-OK result
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[CreateResult] = loop.create_future()

    def _resolve(result: CreateResult) -> None:
        loop.call_soon_threadsafe(_settle, future, result)

    create_full_path_optimistic_async(session, path, data, acl, mode, _resolve)
    result = await future
    if not result.ok:
        raise NodeError.from_code(result.code, result.path, cause=result.cause)
    return result.name or result.path
