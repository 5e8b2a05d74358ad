"""
Typedrow Logging - library logger, structlog configuration, and redaction.

The mapping engine never prints on its own.  It talks to one library-wide
:class:`Logger` (silent :class:`NoOpLogger` by default); applications either
call :func:`configure_logging` to get a structlog logger or hand in any
object with ``debug/info/warning/error`` through :func:`set_logger`.

Manifesto:
    Query logs are the first thing anyone reads when a write misbehaves,
    and the last place a password should appear.

    - **Silent by default:** importing typedrow emits nothing
    - **Structured:** events plus key/value pairs, JSON in production
    - **Redacted:** sensitive bind arguments are masked by position
    - **Scoped:** masks travel in a contextvar, never through signatures

Architecture:
    ::

        crud.insert(...)
          │  serialize_for_insert → redaction_mask = (1,)
          │
          ├─ with redaction_scope((1,)):
          │      executor.execute(sql, ["John", "secret"])
          │        │
          │        └─ logger.debug("query_executed",
          │                        args=redact(args))  → ["John", "[REDACTED]"]
          ▼
        get_logger()  ──▶  NoOpLogger | structlog BoundLogger | custom

Examples:
    >>> from typedrow.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=True, service="billing")
    >>> get_logger().info("ready")

    >>> redact(["John", "secret"], (1,))
    ['John', '[REDACTED]']

Guardrails:
    ❌ DON'T: Log raw bind arguments from an executor
    ✅ DO: ``redact(args)`` inside the active ``redaction_scope``

    ❌ DON'T: Configure logging at import time
    ✅ DO: Call ``configure_logging()`` once at application startup

Tags:
    logging, structlog, redaction, observability, contextvars, typedrow

Doc-Types:
    - API Reference
    - Observability Guide
"""

from __future__ import annotations

import logging
import sys
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterable, Iterator, Protocol, Sequence, runtime_checkable

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

#: Replacement text for masked arguments.
REDACTED = "[REDACTED]"

# Store service name for metadata
_SERVICE_NAME = "typedrow"


@runtime_checkable
class Logger(Protocol):
    """Minimal structured logger contract."""

    def debug(self, event: str, **kw: Any) -> Any: ...

    def info(self, event: str, **kw: Any) -> Any: ...

    def warning(self, event: str, **kw: Any) -> Any: ...

    def error(self, event: str, **kw: Any) -> Any: ...


class NoOpLogger:
    """Discards everything."""

    def debug(self, event: str, **kw: Any) -> None:
        pass

    def info(self, event: str, **kw: Any) -> None:
        pass

    def warning(self, event: str, **kw: Any) -> None:
        pass

    def error(self, event: str, **kw: Any) -> None:
        pass


_logger: Logger = NoOpLogger()
_logger_lock = threading.Lock()


def set_logger(logger: Logger | None) -> None:
    """Install the library logger; ``None`` restores the no-op logger."""
    global _logger
    with _logger_lock:
        _logger = logger if logger is not None else NoOpLogger()


def get_logger() -> Logger:
    """Return the library logger currently installed."""
    return _logger


# =========================================================================
# structlog configuration
# =========================================================================


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _elasticsearch_compatible(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Make field names Elasticsearch/ECS compatible."""
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")
    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")
    return event_dict


def configure_logging(
    level: str | None = None,
    json_format: bool | None = None,
    service: str | None = None,
    add_timestamp: bool = True,
    install: bool = True,
) -> Any:
    """Configure structlog and install it as the library logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR); defaults to
            ``TypedRowSettings.log_level``
        json_format: True for JSON, False for console, None for the
            settings value (auto-detect when that is unset too)
        service: Service name included in every event
        add_timestamp: Include ISO timestamp in logs
        install: Install the configured logger via :func:`set_logger`

    Returns:
        The configured structlog logger.
    """
    from typedrow.settings import get_settings

    global _SERVICE_NAME
    settings = get_settings()
    level = (level or settings.log_level).upper()
    _SERVICE_NAME = service or settings.service_name
    if json_format is None:
        json_format = settings.json_logs
    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]
    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(_elasticsearch_compatible)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    logger = structlog.get_logger("typedrow")
    if install:
        set_logger(logger)
    return logger


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(model="User", operation="insert"):
            crud.insert(executor, user)
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())


# =========================================================================
# Redaction
# =========================================================================

_redaction_mask: ContextVar[frozenset[int] | None] = ContextVar("typedrow_redaction_mask", default=None)


@contextmanager
def redaction_scope(mask: Iterable[int] | None) -> Iterator[frozenset[int]]:
    """Mask the given argument positions for statements logged in this scope."""
    active = frozenset(mask or ())
    token = _redaction_mask.set(active)
    try:
        yield active
    finally:
        _redaction_mask.reset(token)


def current_redaction_mask() -> frozenset[int]:
    return _redaction_mask.get() or frozenset()


def redact(args: Sequence[Any], mask: Iterable[int] | None = None) -> list[Any]:
    """Copy of ``args`` with masked positions replaced by ``"[REDACTED]"``.

    ``mask`` defaults to the active :func:`redaction_scope`.
    """
    positions = frozenset(mask) if mask is not None else current_redaction_mask()
    if not positions:
        return list(args)
    return [REDACTED if i in positions else value for i, value in enumerate(args)]


__all__ = [
    "REDACTED",
    "Logger",
    "NoOpLogger",
    "set_logger",
    "get_logger",
    "configure_logging",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
    "redaction_scope",
    "current_redaction_mask",
    "redact",
]
