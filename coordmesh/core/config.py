"""
Configuration Management for the Coordination Path Toolkit

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from coordmesh.core.types import Result, Ok, Err
from coordmesh.core import constants as C


def _split_servers(raw: str) -> tuple[str, ...]:
    return tuple(s.strip() for s in raw.split(",") if s.strip())


@dataclass(frozen=True)
class SessionConfig:
    """Coordination session configuration."""

    servers: tuple[str, ...] = ()
    session_timeout_ms: int = C.DEFAULT_SESSION_TIMEOUT_MS
    backend: str = C.DEFAULT_BACKEND

    @property
    def connect_string(self) -> str:
        """Comma-separated host:port list as ZooKeeper clients expect it."""
        return ",".join(self.servers)


@dataclass(frozen=True)
class ObservabilityConfig:
    """Observability and telemetry configuration."""

    log_level: str = "INFO"
    log_json: bool = True
    tracing_enabled: bool = True


@dataclass(frozen=True)
class CoordMeshConfig:
    """Root configuration."""

    session: SessionConfig = field(default_factory=SessionConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[CoordMeshConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with COORDMESH_.
        Example: COORDMESH_SERVERS=zk1:2181,zk2:2181
        """
        try:
            session = SessionConfig(
                servers=_split_servers(os.getenv("COORDMESH_SERVERS", "")),
                session_timeout_ms=int(
                    os.getenv("COORDMESH_SESSION_TIMEOUT_MS", str(C.DEFAULT_SESSION_TIMEOUT_MS))
                ),
                backend=os.getenv("COORDMESH_BACKEND", C.DEFAULT_BACKEND).strip().lower(),
            )

            observability = ObservabilityConfig(
                log_level=os.getenv("COORDMESH_LOG_LEVEL", "INFO").upper(),
                log_json=os.getenv("COORDMESH_LOG_JSON", "true").lower() in ("1", "true", "yes"),
                tracing_enabled=os.getenv("COORDMESH_TRACING", "true").lower() in ("1", "true", "yes"),
            )

            return Ok(cls(session=session, observability=observability))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate configuration invariants."""
        if not self.session.servers:
            return Err("servers cannot be empty")
        if self.session.session_timeout_ms < C.MIN_SESSION_TIMEOUT_MS:
            return Err("session_timeout_ms must be positive")
        if self.session.backend not in C.SUPPORTED_BACKENDS:
            return Err(
                f"Unknown backend '{self.session.backend}', "
                f"expected one of {', '.join(C.SUPPORTED_BACKENDS)}"
            )
        return Ok(None)
