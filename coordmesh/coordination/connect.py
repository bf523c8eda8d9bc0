"""
Connection Establisher

Builds a session handle, blocks until the watcher reports it connected
(or the watcher's own timeout elapses), then re-checks the session's
state directly before handing it out.
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

from coordmesh.core.config import SessionConfig
from coordmesh.core.errors import ConfigurationError, ConnectionLossError
from coordmesh.coordination.protocols import CoordinationSession, SessionFactory, Watcher
from coordmesh.coordination.kazoo_session import kazoo_session_factory
from coordmesh.coordination.memory import InMemoryCoordinationService
from coordmesh.coordination.watcher import ConnectionWatcher
from coordmesh.observability.logging import StructuredLogger
from coordmesh.observability.metrics import MetricsCollector
from coordmesh.observability.tracing import Tracer

logger = StructuredLogger(__name__)

_metrics = MetricsCollector.get_instance()
_connect_latency = _metrics.histogram(
    "coordmesh_connect_seconds",
    help_text="Time spent waiting for a session to connect",
)
_connect_failures = _metrics.counter(
    "coordmesh_connect_failures_total",
    ["reason"],
    help_text="Sessions that failed to reach the connected state",
)


def _normalize_servers(servers: Union[str, Sequence[str], None]) -> str:
    if servers is None:
        return ""
    if isinstance(servers, str):
        return servers.strip()
    return ",".join(s.strip() for s in servers if s and s.strip())


def create_connected_session(
    servers: Union[str, Sequence[str], None],
    watcher: Watcher,
    session_factory: Optional[SessionFactory] = None,
) -> CoordinationSession:
    """
    Create a session and wait until it is connected.

    Args:
        servers: Connect string or list of host:port entries
        watcher: Supplies the session timeout, receives session events
                 and provides the bounded wait
        session_factory: Builds the session (default: kazoo)

    Returns:
        The connected session; the caller owns it and must close it

    Raises:
        ConfigurationError: servers is empty or missing (no I/O attempted)
        ConnectionLossError: the wait timed out, or the session was no
            longer connected when re-checked after the wait
    """
    connect_string = _normalize_servers(servers)
    if not connect_string:
        raise ConfigurationError.empty_server_list()

    factory = session_factory or kazoo_session_factory
    tracer = Tracer.get_instance()

    with tracer.start_span("create_connected_session", {"servers": connect_string}) as span:
        session = factory(connect_string, watcher.session_timeout_ms, watcher)
        try:
            with _connect_latency.time():
                watcher.wait_for_connection()
        except ConnectionLossError:
            _connect_failures.inc(reason="timeout")
            logger.warning(
                "Session did not connect in time",
                servers=connect_string,
                timeout_ms=watcher.session_timeout_ms,
            )
            session.close()
            raise

        # The session may have moved away from CONNECTED since the notification
        state = session.state
        if not state.is_connected:
            _connect_failures.inc(reason="state_recheck")
            logger.warning(
                "Session lost connection right after connecting",
                servers=connect_string,
                session_state=state.name,
            )
            session.close()
            raise ConnectionLossError.not_connected(state.name)

        span.set_attribute("session_timeout_ms", session.session_timeout_ms)

    logger.info("Session connected", servers=connect_string)
    return session


def session_factory_for(
    config: SessionConfig,
    service: Optional[InMemoryCoordinationService] = None,
) -> SessionFactory:
    """
    Pick the session factory for the configured backend.

    The memory backend needs a service instance; a fresh one is created
    when none is given.
    """
    if config.backend == "memory":
        return (service or InMemoryCoordinationService()).connect
    if config.backend == "zookeeper":
        return kazoo_session_factory
    raise ConfigurationError.invalid_value("backend", config.backend, "unknown backend")


def connect_from_config(
    config: SessionConfig,
    service: Optional[InMemoryCoordinationService] = None,
) -> CoordinationSession:
    """Build a watcher from config and return a connected session."""
    watcher = ConnectionWatcher.from_config(config)
    return create_connected_session(
        config.servers,
        watcher,
        session_factory=session_factory_for(config, service),
    )
