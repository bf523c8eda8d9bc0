"""
Structured Logging: JSON Lines with Trace Correlation

Every record carries the fields passed as keyword arguments, the fields
bound with StructuredLogger.context(), and the ids of the span that was
current when the record was emitted.

Everything is layered on the standard library logging module, so
libraries that log through logging.getLogger() (kazoo included) are
formatted the same way once setup_logging() has run.
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Iterator, Mapping, Optional, TextIO

from coordmesh.observability.tracing import Tracer


class LogLevel(IntEnum):
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR

    @classmethod
    def from_name(cls, name: str) -> LogLevel:
        """Level for a COORDMESH_LOG_LEVEL value; unknown names mean INFO."""
        return cls.__members__.get(name.strip().upper(), cls.INFO)


_bound_fields: ContextVar[Mapping[str, Any]] = ContextVar("coordmesh_log_fields", default={})

# Attribute names of a bare LogRecord; extra fields must not shadow them
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "@timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
        }

        span = Tracer.get_current_span()
        if span is not None:
            payload["trace_id"] = span.context.trace_id
            payload["span_id"] = span.context.span_id

        payload.update(_bound_fields.get())
        payload.update(
            (key, value) for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
        )

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class StructuredLogger:
    """
    Logger taking structured fields as keyword arguments.

    Usage:
        logger = StructuredLogger(__name__)
        logger.debug("Parent missing, ascending", node_path=path)

        with StructuredLogger.context(servers="zk1:2181"):
            session = create_connected_session(...)
    """

    __slots__ = ("_logger", "_fields")

    def __init__(self, name: str, fields: Optional[Mapping[str, Any]] = None) -> None:
        self._logger = logging.getLogger(name)
        self._fields = dict(fields or {})

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit(logging.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit(logging.ERROR, message, fields)

    def _emit(self, level: int, message: str, fields: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {**self._fields, **fields}
        clashes = _RECORD_ATTRS.intersection(extra)
        if clashes:
            raise ValueError(f"Log fields shadow LogRecord attributes: {sorted(clashes)}")
        self._logger.log(level, message, extra=extra, stacklevel=3)

    def with_extra(self, **fields: Any) -> StructuredLogger:
        """Logger with additional fields attached to every record."""
        return StructuredLogger(self._logger.name, {**self._fields, **fields})

    @staticmethod
    @contextmanager
    def context(**fields: Any) -> Iterator[None]:
        """Bind fields to every record emitted in this context."""
        token = _bound_fields.set({**_bound_fields.get(), **fields})
        try:
            yield
        finally:
            _bound_fields.reset(token)


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    json_output: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Route all logging to one stream handler.

    Args:
        level: Minimum log level
        json_output: JSON lines when True, a plain text line otherwise
        stream: Output stream (default: stderr)
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        JsonFormatter() if json_output
        else logging.Formatter("%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s")
    )

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # kazoo logs every reconnect attempt at INFO
    logging.getLogger("kazoo.client").setLevel(max(level, LogLevel.WARNING))
