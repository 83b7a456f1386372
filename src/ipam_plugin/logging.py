"""
Structured logging for the IPAM plugin.

This module provides:
- JSON or text log output with consistent fields
- One call record per dispatched protocol request
- Request id correlation and timing helpers
"""

from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from .config import LoggingConfig, get_settings

# =============================================================================
# Log Record Types
# =============================================================================


@dataclass
class LogContext:
    """Context information attached to log records."""

    request_id: str | None = None
    plugin: str | None = None
    path: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in asdict(self).items() if v is not None and k != "extra"}
        d.update(self.extra)
        return d

    def with_update(self, **kwargs) -> LogContext:
        """Create a new context with updated values."""
        return LogContext(
            request_id=kwargs.get("request_id", self.request_id),
            plugin=kwargs.get("plugin", self.plugin),
            path=kwargs.get("path", self.path),
            operation=kwargs.get("operation", self.operation),
            extra={**self.extra, **kwargs.get("extra", {})},
        )


@dataclass
class CallLog:
    """Log record for one protocol call."""

    request_id: str
    path: str
    operation: str

    # Outcome: "ok", "driver_error" or "decode_error"
    outcome: str = "ok"
    error: str | None = None

    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    duration_ms: float | None = None

    @property
    def success(self) -> bool:
        return self.outcome == "ok"

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in asdict(self).items() if v is not None}
        d["success"] = self.success
        return d


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger:
    """
    Logger with structured output and context tracking.

    Example:
        ```python
        logger = StructuredLogger("ipam_plugin")

        with logger.request_context("/IpamDriver.RequestPool", "request_pool") as request_id:
            ...
            logger.log_call(CallLog(request_id=request_id, ...))
        ```
    """

    def __init__(
        self,
        name: str = "ipam_plugin",
        level: str = "INFO",
        json_output: bool = False,
    ):
        self.name = name
        self.json_output = json_output

        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level.upper()))

        # Per-task context so concurrent calls do not see each other's ids
        self._context_var: ContextVar[LogContext] = ContextVar(f"{name}.log_context", default=LogContext())

        formatter = JSONFormatter() if json_output else TextFormatter()

        # Configure handler if not already configured
        if not self._logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(formatter)
            self._logger.addHandler(handler)
        else:
            for handler in self._logger.handlers:
                if isinstance(handler.formatter, (JSONFormatter, TextFormatter)):
                    handler.setFormatter(formatter)

    @property
    def context(self) -> LogContext:
        return self._context_var.get()

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def set_context(self, **kwargs) -> None:
        """Update the current log context."""
        self._context_var.set(self.context.with_update(**kwargs))

    @contextmanager
    def request_context(self, path: str, operation: str) -> Iterator[str]:
        """
        Context manager for a single protocol call.

        Yields:
            The request ID
        """
        request_id = generate_request_id()
        token = self._context_var.set(
            self.context.with_update(request_id=request_id, path=path, operation=operation)
        )
        try:
            yield request_id
        finally:
            self._context_var.reset(token)

    def _log(
        self,
        level: int,
        message: str,
        event_type: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Internal logging method."""
        record_data = {
            "message": message,
            **self.context.to_dict(),
        }

        if event_type:
            record_data["event_type"] = event_type

        if data:
            record_data.update(data)

        if self.json_output:
            self._logger.log(level, json.dumps(record_data))
        else:
            extras = " ".join(f"{k}={v}" for k, v in record_data.items() if k != "message")
            self._logger.log(level, f"{message} {extras}".rstrip())

    def debug(self, message: str, **kwargs) -> None:
        self._log(logging.DEBUG, message, data=kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._log(logging.INFO, message, data=kwargs)

    def log_call(self, call: CallLog) -> None:
        """Log a dispatched protocol call."""
        level = logging.DEBUG if call.success else logging.WARNING
        message = f"{call.path} {call.outcome}"
        if call.duration_ms is not None:
            message += f" ({call.duration_ms:.1f}ms)"
        self._log(level, message, event_type="call", data=call.to_dict())


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }

        # Parse JSON message if present
        try:
            message_data = json.loads(record.getMessage())
        except (json.JSONDecodeError, TypeError):
            message_data = None
        if isinstance(message_data, dict):
            log_data.update(message_data)
        else:
            log_data["message"] = record.getMessage()

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%H:%M:%S.%f")[:-3]
        line = f"{timestamp} {record.levelname:8} {record.name}: {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# Utilities
# =============================================================================


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return f"req_{uuid.uuid4().hex[:12]}"


def truncate_for_log(text: str, max_length: int = 200) -> str:
    """Truncate text for logging."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + f"... ({len(text)} chars total)"


@dataclass
class Timer:
    """Simple timer for measuring durations."""

    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None

    def stop(self) -> float:
        """Stop the timer and return duration in milliseconds."""
        self.end_time = time.perf_counter()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> float:
        """Elapsed time in milliseconds."""
        end = self.end_time or time.perf_counter()
        return (end - self.start_time) * 1000


@contextmanager
def timed() -> Iterator[Timer]:
    """Context manager for timing operations."""
    timer = Timer()
    try:
        yield timer
    finally:
        timer.stop()


# =============================================================================
# Global Logger
# =============================================================================

_default_logger: StructuredLogger | None = None


def get_logger(config: LoggingConfig | None = None) -> StructuredLogger:
    """
    Get the shared plugin logger.

    The first call builds it from ``config`` (or the global settings); later
    calls return the same logger untouched. Use ``configure_logging()`` to
    change level or format afterwards.
    """
    if _default_logger is None:
        config = config or get_settings().logging
        return configure_logging(level=config.level, json_output=config.format == "json")
    return _default_logger


def configure_logging(level: str = "INFO", json_output: bool = False) -> StructuredLogger:
    """(Re)configure the shared plugin logger."""
    global _default_logger
    _default_logger = StructuredLogger(level=level, json_output=json_output)
    return _default_logger


__all__ = [
    "LogContext",
    "CallLog",
    "StructuredLogger",
    "JSONFormatter",
    "TextFormatter",
    "Timer",
    "timed",
    "generate_request_id",
    "truncate_for_log",
    "get_logger",
    "configure_logging",
]
