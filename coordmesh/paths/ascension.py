"""
Ascension State Machine: Asynchronous Optimistic Full-Path Creation

States:
    ATTEMPT_LEAF → First create of the requested path
    AWAIT_PARENT → An ancestor create is in flight
    RETRY_LEAF   → Ancestors are in place, the requested path is reissued
    DONE         → The caller's callback has been invoked

Transitions (driven by each CreateResult):
    any          --NO_NODE, parent exists-->   AWAIT_PARENT (push parent)
    any          --NO_NODE, no parent------>   DONE (forward NO_NODE)
    AWAIT_PARENT --OK / NODE_EXISTS--------->  AWAIT_PARENT or RETRY_LEAF (pop)
    AWAIT_PARENT --other------------------->   DONE (forward ancestor result)
    ATTEMPT_LEAF / RETRY_LEAF --not NO_NODE--> DONE (forward verbatim)

Design:
    - Pending requests live on an explicit stack of CreateRequest records;
      the bottom entry is the caller's request, captured once
    - Synthesized ancestors are PERSISTENT with empty data and the
      caller's ACL, whatever the leaf's mode
    - Exactly one request is in flight per operation; every step chains
      the next request from inside a completion, never blocking the
      session's dispatch thread
    - NODE_EXISTS is success for ancestors only, never for the leaf
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Optional, Sequence

from coordmesh.core.types import AclEntry, CreateMode, ZNodePath
from coordmesh.core.errors import ReturnCode
from coordmesh.coordination.protocols import (
    CoordinationSession,
    CreateCallback,
    CreateResult,
)
from coordmesh.observability.logging import StructuredLogger
from coordmesh.observability.metrics import MetricsCollector

logger = StructuredLogger(__name__)

_metrics = MetricsCollector.get_instance()
CREATE_ATTEMPTS = _metrics.counter(
    "coordmesh_create_attempts_total",
    ["code", "form"],
    help_text="Create requests issued by the path creator, by outcome",
)
ASCENSION_STEPS = _metrics.counter(
    "coordmesh_ascension_steps_total",
    ["form"],
    help_text="Missing ancestor levels encountered during path creation",
)


def parent_of(path: str) -> Optional[str]:
    """Creatable parent of path, or None at the top of the tree."""
    parsed = ZNodePath.parse(path)
    if parsed.is_err():
        return None
    parent = parsed.unwrap().parent()
    return parent.value if parent is not None else None


class AscensionState(Enum):
    """Lifecycle of one asynchronous full-path create."""
    ATTEMPT_LEAF = auto()
    AWAIT_PARENT = auto()
    RETRY_LEAF = auto()
    DONE = auto()

    @property
    def is_terminal(self) -> bool:
        return self is AscensionState.DONE


@dataclass(frozen=True, slots=True)
class CreateRequest:
    """Parameters of one create request."""
    path: str
    data: bytes
    acl: tuple[AclEntry, ...]
    mode: CreateMode

    def ancestor(self, parent_path: str) -> CreateRequest:
        """Request for a synthesized ancestor: empty, persistent, same ACL."""
        return CreateRequest(
            path=parent_path,
            data=b"",
            acl=self.acl,
            mode=CreateMode.PERSISTENT,
        )


class AscensionOperation:
    """
    One in-flight asynchronous full-path create.

    Usage:
        op = AscensionOperation(session, request, callback, ctx)
        op.start()

    The callback is invoked exactly once, on the session's dispatch
    thread, with either the leaf's result or the first result that
    ends the ascension.
    """

    __slots__ = ("_session", "_pending", "_callback", "_ctx", "_state", "_attempts", "_log")

    def __init__(
        self,
        session: CoordinationSession,
        request: CreateRequest,
        callback: CreateCallback,
        ctx: Any = None,
    ) -> None:
        self._session = session
        self._pending: list[CreateRequest] = [request]
        self._callback = callback
        self._ctx = ctx
        self._state = AscensionState.ATTEMPT_LEAF
        self._attempts = 0
        self._log = logger.with_extra(leaf_path=request.path)

    @property
    def state(self) -> AscensionState:
        return self._state

    @property
    def attempts(self) -> int:
        """Create requests issued so far."""
        return self._attempts

    @property
    def request(self) -> CreateRequest:
        """The caller's original request."""
        return self._pending[0]

    def start(self) -> None:
        self._issue()

    def _issue(self) -> None:
        request = self._pending[-1]
        self._attempts += 1
        self._session.create_async(
            request.path,
            request.data,
            request.acl,
            request.mode,
            self._on_result,
            self._ctx,
        )

    def _on_result(self, result: CreateResult) -> None:
        CREATE_ATTEMPTS.inc(code=result.code.name, form="async")
        current = self._pending[-1]

        if result.code is ReturnCode.NO_NODE:
            parent = parent_of(current.path)
            if parent is None:
                self._finish(result)
                return
            ASCENSION_STEPS.inc(form="async")
            self._log.debug("Parent missing, ascending", node_path=current.path, parent_path=parent)
            self._pending.append(current.ancestor(parent))
            self._state = AscensionState.AWAIT_PARENT
            self._issue()
            return

        if len(self._pending) == 1:
            self._finish(result)
            return

        if result.code in (ReturnCode.OK, ReturnCode.NODE_EXISTS):
            self._pending.pop()
            if len(self._pending) == 1:
                self._state = AscensionState.RETRY_LEAF
            self._issue()
            return

        # Reported with the ancestor's path, as the recursive form did
        self._finish(result)

    def _finish(self, result: CreateResult) -> None:
        self._state = AscensionState.DONE
        self._log.debug(
            "Full-path create finished",
            code=result.code.name,
            attempts=self._attempts,
        )
        self._callback(result)


def start_ascension(
    session: CoordinationSession,
    path: str,
    data: bytes,
    acl: Sequence[AclEntry],
    mode: CreateMode,
    callback: CreateCallback,
    ctx: Any = None,
) -> AscensionOperation:
    """Build and start an AscensionOperation, returning it for inspection."""
    operation = AscensionOperation(
        session,
        CreateRequest(path=path, data=bytes(data), acl=tuple(acl), mode=mode),
        callback,
        ctx,
    )
    operation.start()
    return operation
