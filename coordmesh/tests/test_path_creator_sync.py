"""
Blocking Optimistic Full-Path Creation Tests

Tests for:
- Leaf-first creation with ancestors created only on NO_NODE
- Ancestors: persistent, empty, same ACL, whatever the leaf's mode
- NODE_EXISTS tolerated for ancestors, surfaced for the leaf
- Error propagation: top-level NO_NODE, other codes, failed retry

Run: python -m pytest coordmesh/tests/test_path_creator_sync.py -v
"""

from __future__ import annotations

from typing import Any, Callable, Sequence

import pytest

from coordmesh.core import constants as C
from coordmesh.core.errors import (
    CoordMeshError,
    NodeExistsError,
    NoNodeError,
    ReturnCode,
    ServiceError,
)
from coordmesh.core.types import AclEntry, CreateMode, OPEN_ACL_UNSAFE
from coordmesh.coordination.memory import InMemoryCoordinationService, InMemorySession
from coordmesh.observability.tracing import SpanStatus, Tracer
from coordmesh.paths.ascension import ASCENSION_STEPS, CREATE_ATTEMPTS
from coordmesh.paths.creator import create_full_path_optimistic, try_create_full_path

DIGEST_ACL = (AclEntry(C.PERM_ALL, "digest", "bookie:secret"),)


# =============================================================================
# TEST UTILITIES
# =============================================================================
class SpySession:
    """Delegating session that records raised errors and runs hooks before creates."""

    def __init__(self, inner: InMemorySession) -> None:
        self.inner = inner
        self.raised: list[Exception] = []
        self.before_create: dict[str, Callable[[], None]] = {}

    @property
    def state(self) -> Any:
        return self.inner.state

    @property
    def session_timeout_ms(self) -> int:
        return self.inner.session_timeout_ms

    def create(self, path: str, data: bytes, acl: Sequence[AclEntry], mode: CreateMode) -> str:
        hook = self.before_create.pop(path, None)
        if hook is not None:
            hook()
        try:
            return self.inner.create(path, data, acl, mode)
        except Exception as e:
            self.raised.append(e)
            raise

    def create_async(self, *args: Any, **kwargs: Any) -> None:
        self.inner.create_async(*args, **kwargs)

    def close(self) -> None:
        self.inner.close()


def history_of(service: InMemoryCoordinationService) -> list[tuple[str, ReturnCode]]:
    return [(r.path, r.code) for r in service.history]


# =============================================================================
# ASCENSION
# =============================================================================
def test_creates_missing_ancestors_top_down(
    service: InMemoryCoordinationService, session: InMemorySession
) -> None:
    name = create_full_path_optimistic(session, "/a/b/c", b"payload", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)

    assert name == "/a/b/c"
    assert history_of(service) == [
        ("/a/b/c", ReturnCode.NO_NODE),
        ("/a/b", ReturnCode.NO_NODE),
        ("/a", ReturnCode.OK),
        ("/a/b", ReturnCode.OK),
        ("/a/b/c", ReturnCode.OK),
    ]
    assert service.get_data("/a/b/c") == b"payload"


def test_existing_parent_needs_single_request(
    service: InMemoryCoordinationService, session: InMemorySession
) -> None:
    session.create("/a", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)
    service.clear_history()

    create_full_path_optimistic(session, "/a/b", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)

    assert history_of(service) == [("/a/b", ReturnCode.OK)]


def test_ancestors_are_persistent_and_empty_with_leaf_acl(
    service: InMemoryCoordinationService, session: InMemorySession
) -> None:
    create_full_path_optimistic(session, "/x/y/leaf", b"leaf-data", DIGEST_ACL, CreateMode.EPHEMERAL)

    for ancestor in ("/x", "/x/y"):
        assert service.get_mode(ancestor) is CreateMode.PERSISTENT
        assert service.get_data(ancestor) == b""
        assert service.get_acl(ancestor) == DIGEST_ACL
    assert service.get_mode("/x/y/leaf") is CreateMode.EPHEMERAL
    assert service.get_data("/x/y/leaf") == b"leaf-data"


def test_sequential_leaf_returns_assigned_name(
    service: InMemoryCoordinationService, session: InMemorySession
) -> None:
    name = create_full_path_optimistic(
        session, "/locks/lock-", b"", OPEN_ACL_UNSAFE, CreateMode.EPHEMERAL_SEQUENTIAL
    )
    assert name == "/locks/lock-0000000000"
    assert service.get_children("/locks") == ["lock-0000000000"]


def test_ancestor_created_concurrently_is_tolerated(
    service: InMemoryCoordinationService, session: InMemorySession
) -> None:
    spy = SpySession(session)
    spy.before_create["/a"] = lambda: session.create("/a", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)

    assert create_full_path_optimistic(spy, "/a/b/c", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT) == "/a/b/c"
    assert ("/a", ReturnCode.NODE_EXISTS) in history_of(service)
    assert service.exists("/a/b")


# =============================================================================
# ERROR PROPAGATION
# =============================================================================
def test_existing_leaf_raises_node_exists(session: InMemorySession) -> None:
    session.create("/a", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)
    with pytest.raises(NodeExistsError) as exc_info:
        create_full_path_optimistic(session, "/a", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)
    assert exc_info.value.path == "/a"


def test_top_level_no_node_reraises_original_error(
    service: InMemoryCoordinationService, session: InMemorySession
) -> None:
    spy = SpySession(session)
    service.fail_next_create("/x", ReturnCode.NO_NODE)

    with pytest.raises(NoNodeError) as exc_info:
        create_full_path_optimistic(spy, "/x", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)

    assert exc_info.value is spy.raised[0]
    assert history_of(service) == [("/x", ReturnCode.NO_NODE)]


def test_ancestor_failure_propagates(
    service: InMemoryCoordinationService, session: InMemorySession
) -> None:
    service.fail_next_create("/a/b", ReturnCode.NO_AUTH)

    with pytest.raises(ServiceError) as exc_info:
        create_full_path_optimistic(session, "/a/b/c", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)

    assert exc_info.value.return_code is ReturnCode.NO_AUTH
    assert exc_info.value.path == "/a/b"
    assert not service.exists("/a/b/c")


def test_leaf_is_retried_exactly_once(
    service: InMemoryCoordinationService, session: InMemorySession
) -> None:
    service.fail_next_create("/a/b", ReturnCode.NO_NODE, times=2)

    with pytest.raises(NoNodeError):
        create_full_path_optimistic(session, "/a/b", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)

    assert history_of(service) == [
        ("/a/b", ReturnCode.NO_NODE),
        ("/a", ReturnCode.OK),
        ("/a/b", ReturnCode.NO_NODE),
    ]


def test_connection_loss_is_not_retried(
    service: InMemoryCoordinationService, session: InMemorySession
) -> None:
    service.disconnect(session)
    with pytest.raises(ServiceError) as exc_info:
        create_full_path_optimistic(session, "/a/b", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)
    assert exc_info.value.return_code is ReturnCode.CONNECTION_LOSS
    assert service.history == []


# =============================================================================
# RESULT WRAPPER AND TELEMETRY
# =============================================================================
def test_try_create_full_path(session: InMemorySession) -> None:
    ok = try_create_full_path(session, "/r/s", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)
    assert ok.is_ok() and ok.unwrap() == "/r/s"

    err = try_create_full_path(session, "/r/s", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)
    assert err.is_err()
    assert isinstance(err.error, CoordMeshError)
    assert isinstance(err.error, NodeExistsError)


def test_metrics_count_attempts_and_ascension(session: InMemorySession) -> None:
    no_node_before = CREATE_ATTEMPTS.get(code="NO_NODE", form="sync")
    ok_before = CREATE_ATTEMPTS.get(code="OK", form="sync")
    steps_before = ASCENSION_STEPS.get(form="sync")

    create_full_path_optimistic(session, "/m/n/o", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)

    assert CREATE_ATTEMPTS.get(code="NO_NODE", form="sync") - no_node_before == 2
    assert CREATE_ATTEMPTS.get(code="OK", form="sync") - ok_before == 3
    assert ASCENSION_STEPS.get(form="sync") - steps_before == 2


def test_failed_create_marks_span_as_error(session: InMemorySession) -> None:
    session.create("/t", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)
    with pytest.raises(NodeExistsError):
        create_full_path_optimistic(session, "/t", b"", OPEN_ACL_UNSAFE, CreateMode.PERSISTENT)

    span = Tracer.get_instance().get_recent_spans(limit=1)[0]
    assert span.name == "create_full_path_optimistic"
    assert span.status is SpanStatus.ERROR
    assert span.attributes["path"] == "/t"
