"""Timeouts and helpers shared by the test modules."""

from __future__ import annotations

import threading
from typing import Optional

from coordmesh.coordination.protocols import CreateResult

TEST_TIMEOUT_MS = 2000
WAIT_S = 5.0


class ResultSink:
    """Callback target that records one CreateResult and signals its arrival."""

    def __init__(self) -> None:
        self.results: list[CreateResult] = []
        self.thread_names: list[str] = []
        self._done = threading.Event()

    def __call__(self, result: CreateResult) -> None:
        self.thread_names.append(threading.current_thread().name)
        self.results.append(result)
        self._done.set()

    def wait(self, timeout: float = WAIT_S) -> Optional[CreateResult]:
        if not self._done.wait(timeout):
            return None
        return self.results[0]
