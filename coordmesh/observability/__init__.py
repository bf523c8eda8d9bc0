"""
Observability module: Metrics, tracing, and structured logging.
"""

from coordmesh.observability.metrics import MetricsCollector, Counter, Histogram
from coordmesh.observability.tracing import Tracer, Span, SpanContext, SpanStatus
from coordmesh.observability.logging import StructuredLogger, LogLevel, setup_logging

__all__ = [
    "MetricsCollector",
    "Counter",
    "Histogram",
    "Tracer",
    "Span",
    "SpanContext",
    "SpanStatus",
    "StructuredLogger",
    "LogLevel",
    "setup_logging",
]
