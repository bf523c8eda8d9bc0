"""
Tracing: Lightweight Span Management

Provides request correlation and latency breakdown for coordination
operations:
- Span contexts with trace/span IDs
- Parent-child relationships via context variables
- Bounded in-process span buffer with optional exporter

Spans never cross the session's dispatch thread: asynchronous
ascension is recorded through metrics and log fields instead.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from collections import deque
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Iterator, Optional

logger = logging.getLogger(__name__)

MAX_BUFFERED_SPANS = 4096


class SpanStatus(Enum):
    UNSET = auto()
    OK = auto()
    ERROR = auto()


@dataclass(frozen=True, slots=True)
class SpanContext:
    """Identifiers propagated from a span to its children."""
    trace_id: str
    span_id: str
    parent_span_id: Optional[str] = None
    sampled: bool = True

    def child(self) -> SpanContext:
        return SpanContext(
            trace_id=self.trace_id,
            span_id=secrets.token_hex(8),
            parent_span_id=self.span_id,
            sampled=self.sampled,
        )

    @classmethod
    def new_trace(cls, sampled: bool = True) -> SpanContext:
        return cls(trace_id=secrets.token_hex(16), span_id=secrets.token_hex(8), sampled=sampled)


@dataclass(slots=True)
class Span:
    """One timed operation: a full-path create or a connection attempt."""
    name: str
    context: SpanContext
    start_ns: int = field(default_factory=time.monotonic_ns)
    end_ns: Optional[int] = None
    status: SpanStatus = SpanStatus.UNSET
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> Optional[float]:
        if self.end_ns is None:
            return None
        return (self.end_ns - self.start_ns) / 1_000_000

    def set_attribute(self, key: str, value: Any) -> Span:
        self.attributes[key] = value
        return self

    def fail(self, error: BaseException) -> None:
        self.status = SpanStatus.ERROR
        self.attributes["error.type"] = type(error).__name__
        self.attributes["error.message"] = str(error)

    def finish(self) -> None:
        self.end_ns = time.monotonic_ns()
        if self.status is SpanStatus.UNSET:
            self.status = SpanStatus.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "trace_id": self.context.trace_id,
            "span_id": self.context.span_id,
            "parent_span_id": self.context.parent_span_id,
            "duration_ms": self.duration_ms,
            "status": self.status.name,
            "attributes": dict(self.attributes),
        }


_current_span: ContextVar[Optional[Span]] = ContextVar("current_span", default=None)


class Tracer:
    """
    In-process tracer.

    Usage:
        tracer = Tracer.get_instance()

        with tracer.start_span("create_full_path_optimistic", {"path": path}) as span:
            name = session.create(...)
            span.set_attribute("created", name)
    """

    __slots__ = ("_service_name", "_enabled", "_exporter", "_finished", "_lock")

    _instance: Optional[Tracer] = None

    def __init__(
        self,
        service_name: str,
        enabled: bool = True,
        exporter: Optional[Callable[[Span], None]] = None,
    ) -> None:
        self._service_name = service_name
        self._enabled = enabled
        self._exporter = exporter
        self._finished: deque[Span] = deque(maxlen=MAX_BUFFERED_SPANS)
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls, service_name: str = "coordmesh") -> Tracer:
        """Get singleton tracer."""
        if cls._instance is None:
            cls._instance = cls(service_name)
        return cls._instance

    @classmethod
    def configure(cls, service_name: str = "coordmesh", enabled: bool = True) -> Tracer:
        """Replace the singleton, e.g. to turn span recording off."""
        cls._instance = cls(service_name, enabled=enabled)
        return cls._instance

    @contextmanager
    def start_span(
        self,
        name: str,
        attributes: Optional[dict[str, Any]] = None,
    ) -> Iterator[Span]:
        """
        Open a span as a child of the current one, if any.

        Exceptions mark the span as ERROR and are re-raised.
        """
        parent = _current_span.get()
        context = parent.context.child() if parent else SpanContext.new_trace(self._enabled)
        span = Span(name=name, context=context, attributes=dict(attributes or {}))
        span.attributes["service.name"] = self._service_name

        token = _current_span.set(span)
        try:
            yield span
        except Exception as e:
            span.fail(e)
            raise
        finally:
            span.finish()
            _current_span.reset(token)
            if context.sampled:
                self._record(span)

    def _record(self, span: Span) -> None:
        with self._lock:
            self._finished.append(span)
        if self._exporter is None:
            return
        try:
            self._exporter(span)
        except Exception as e:
            logger.warning("Span export failed: %s", e)

    @staticmethod
    def get_current_span() -> Optional[Span]:
        return _current_span.get()

    def get_recent_spans(self, limit: int = 100) -> list[Span]:
        """Most recently finished spans, oldest first."""
        with self._lock:
            spans = list(self._finished)
        return spans[-limit:]
