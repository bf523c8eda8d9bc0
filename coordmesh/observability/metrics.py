"""
Metrics Collector: Prometheus-Compatible Counters and Histograms

Used to observe the cost of optimistic path creation (attempts per
outcome, ascension steps) and connection establishment latency.
All metric types are thread-safe: completions arrive on dispatch
threads while blocking callers record from their own threads.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

# Label set as a sorted tuple of (name, value) pairs
LabelKey = tuple[tuple[str, str], ...]

# Seconds; connection waits are bounded by session timeouts of a few seconds
CONNECT_BUCKETS: tuple[float, ...] = (
    0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, float("inf"),
)


class _LabelledMetric:
    """Name, help text and label handling shared by all metric types."""

    __slots__ = ("name", "help_text", "label_names", "_lock")

    kind = "untyped"

    def __init__(self, name: str, label_names: Sequence[str], help_text: str) -> None:
        self.name = name
        self.help_text = help_text
        self.label_names = tuple(label_names)
        self._lock = threading.Lock()

    def _key(self, labels: dict[str, str]) -> LabelKey:
        # Unknown label names are dropped, missing ones become ""
        return tuple((k, str(labels.get(k, ""))) for k in sorted(self.label_names))

    def exposition(self) -> Iterator[str]:
        raise NotImplementedError


class Counter(_LabelledMetric):
    """Monotonic counter, one value per label combination."""

    __slots__ = ("_values",)

    kind = "counter"

    def __init__(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> None:
        super().__init__(name, label_names, help_text)
        self._values: dict[LabelKey, float] = {}

    def inc(self, value: float = 1.0, **labels: str) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + value

    def get(self, **labels: str) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def total(self) -> float:
        """Sum over every label combination."""
        with self._lock:
            return sum(self._values.values())

    def exposition(self) -> Iterator[str]:
        with self._lock:
            items = sorted(self._values.items())
        for key, value in items:
            yield f"{self.name}{_format_labels(key)} {value}"


class Histogram(_LabelledMetric):
    """
    Histogram with cumulative buckets.

    Usage:
        latency = Histogram("coordmesh_connect_seconds")

        with latency.time():
            watcher.wait_for_connection()
    """

    __slots__ = ("buckets", "_series")

    kind = "histogram"

    def __init__(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
        buckets: Optional[Sequence[float]] = None,
    ) -> None:
        super().__init__(name, label_names, help_text)
        bounds = sorted(buckets or CONNECT_BUCKETS)
        if bounds[-1] != float("inf"):
            bounds.append(float("inf"))
        self.buckets = tuple(bounds)
        # label key -> [bucket counts..., sum, count]
        self._series: dict[LabelKey, list[float]] = {}

    def observe(self, value: float, **labels: str) -> None:
        key = self._key(labels)
        with self._lock:
            series = self._series.setdefault(key, [0.0] * (len(self.buckets) + 2))
            for i, bound in enumerate(self.buckets):
                if value <= bound:
                    series[i] += 1
            series[-2] += value
            series[-1] += 1

    @contextmanager
    def time(self, **labels: str) -> Iterator[None]:
        """Observe the wall time of the with-block, even when it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(time.perf_counter() - start, **labels)

    def count(self, **labels: str) -> int:
        key = self._key(labels)
        with self._lock:
            series = self._series.get(key)
            return int(series[-1]) if series else 0

    def exposition(self) -> Iterator[str]:
        with self._lock:
            items = [(key, list(series)) for key, series in sorted(self._series.items())]
        for key, series in items:
            for bound, hits in zip(self.buckets, series):
                le = "+Inf" if bound == float("inf") else repr(bound)
                yield f"{self.name}_bucket{_format_labels(key + (('le', le),))} {int(hits)}"
            yield f"{self.name}_sum{_format_labels(key)} {series[-2]}"
            yield f"{self.name}_count{_format_labels(key)} {int(series[-1])}"


class MetricsCollector:
    """
    Central registry for all metrics.

    Usage:
        collector = MetricsCollector.get_instance()
        attempts = collector.counter("coordmesh_create_attempts_total", ["code"])
        print(collector.export_prometheus())
    """

    __slots__ = ("_metrics", "_lock")

    _instance: Optional[MetricsCollector] = None

    def __init__(self) -> None:
        self._metrics: dict[str, _LabelledMetric] = {}
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> MetricsCollector:
        """Get singleton collector."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _register(self, metric_type: type, name: str, *args: Any) -> Any:
        with self._lock:
            existing = self._metrics.get(name)
            if existing is None:
                existing = self._metrics[name] = metric_type(name, *args)
            elif not isinstance(existing, metric_type):
                raise ValueError(f"Metric '{name}' already registered as {existing.kind}")
            return existing

    def counter(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> Counter:
        """Get or create counter."""
        return self._register(Counter, name, label_names, help_text)

    def histogram(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
        buckets: Optional[Sequence[float]] = None,
    ) -> Histogram:
        """Get or create histogram."""
        return self._register(Histogram, name, label_names, help_text, buckets)

    def export_prometheus(self) -> str:
        """Export all metrics in Prometheus text format."""
        with self._lock:
            metrics = sorted(self._metrics.values(), key=lambda m: m.name)

        lines: list[str] = []
        for metric in metrics:
            if metric.help_text:
                lines.append(f"# HELP {metric.name} {metric.help_text}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            lines.extend(metric.exposition())
        return "\n".join(lines)


def _format_labels(key: LabelKey) -> str:
    if not key:
        return ""
    return "{" + ",".join(f'{k}="{v}"' for k, v in key) + "}"
