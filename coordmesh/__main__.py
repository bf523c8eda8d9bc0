#!/usr/bin/env python3
"""
Coordination Path Toolkit

Entry point demonstrating connection setup and optimistic full-path
creation.

Usage:
    python -m coordmesh /ledgers/00/0001 /locks/lock-

    # Against a ZooKeeper ensemble
    COORDMESH_BACKEND=zookeeper COORDMESH_SERVERS=zk1:2181 python -m coordmesh /a/b/c
"""

from __future__ import annotations

import dataclasses
import os
import sys

from coordmesh.core.config import CoordMeshConfig
from coordmesh.core.errors import CoordMeshError
from coordmesh.core.types import OPEN_ACL_UNSAFE, CreateMode
from coordmesh.coordination.connect import connect_from_config
from coordmesh.observability.logging import LogLevel, setup_logging
from coordmesh.observability.metrics import MetricsCollector
from coordmesh.observability.tracing import Tracer
from coordmesh.paths.creator import try_create_full_path

DEMO_PATHS = ("/coordmesh/demo/a/b/c", "/coordmesh/demo/a/b/d")
MEMORY_SERVERS = ("memory:0",)


def _load_config() -> CoordMeshConfig:
    config_result = CoordMeshConfig.from_env()
    if config_result.is_err():
        print(f"Configuration error: {config_result.error}")
        sys.exit(1)
    config = config_result.unwrap()

    # The demo runs in-process unless a backend is chosen explicitly
    if "COORDMESH_BACKEND" not in os.environ:
        session = dataclasses.replace(
            config.session,
            backend="memory",
            servers=config.session.servers or MEMORY_SERVERS,
        )
        config = dataclasses.replace(config, session=session)

    validation = config.validate()
    if validation.is_err():
        print(f"Validation error: {validation.error}")
        sys.exit(1)
    return config


def main(argv: list[str]) -> int:
    """Create each path given on the command line; return an exit status."""
    config = _load_config()
    setup_logging(
        LogLevel.from_name(config.observability.log_level),
        json_output=config.observability.log_json,
    )
    Tracer.configure("coordmesh", enabled=config.observability.tracing_enabled)

    print(f"✓ Configuration loaded: backend={config.session.backend} "
          f"servers={config.session.connect_string}")

    try:
        session = connect_from_config(config.session)
    except CoordMeshError as e:
        print(f"Connection error: {e}")
        return 1

    print("✓ Session connected")
    failures = 0
    try:
        for path in argv or DEMO_PATHS:
            mode = CreateMode.PERSISTENT_SEQUENTIAL if path.endswith("-") else CreateMode.PERSISTENT
            result = try_create_full_path(session, path, b"", OPEN_ACL_UNSAFE, mode)
            if result.is_ok():
                print(f"  created {result.unwrap()}")
            else:
                failures += 1
                print(f"  {path}: {result.error}")
    finally:
        session.close()

    print("\n--- Metrics ---")
    print(MetricsCollector.get_instance().export_prometheus())
    return 1 if failures else 0


def run() -> None:
    """Synchronous entry point."""
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
