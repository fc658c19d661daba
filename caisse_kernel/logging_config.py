"""
caisse_kernel.logging_config -- JSON-lines logging for settlement operations.

Every record under the ``caisse`` logger namespace is rendered as one JSON
object: timestamp, level, logger, message, the fields bound in LogContext
for the current operation, and whatever was passed through ``extra=``.
Typed caisse errors logged with ``exc_info`` contribute their ``code`` and
structured attributes as ``exc_*`` keys.

Context fields are held in a single ContextVar, so they follow the current
thread or task and never leak between concurrent operations.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, TextIO
from uuid import UUID

_NAMESPACE = "caisse"

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "contract_id",
    "operation",
    "actor_id",
    "request_id",
)

_context: ContextVar[Mapping[str, str]] = ContextVar("caisse_log_context", default={})


class LogContext:
    """Operation-scoped fields stamped onto every caisse log record."""

    @staticmethod
    def _checked(fields: Mapping[str, str | None]) -> dict[str, str]:
        unknown = set(fields) - set(CONTEXT_FIELDS)
        if unknown:
            raise KeyError(f"Unknown log context field(s): {sorted(unknown)}")
        return {k: v for k, v in fields.items() if v is not None}

    @classmethod
    def set(cls, **fields: str | None) -> None:
        """Merge fields into the current context. None values are ignored."""
        _context.set({**_context.get(), **cls._checked(fields)})

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[None]:
        """Overlay fields for the duration of a block, then restore."""
        token = _context.set({**_context.get(), **cls._checked(fields)})
        try:
            yield
        finally:
            _context.reset(token)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        # Amounts keep their exact textual form.
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return str(value)


_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


class StructuredFormatter(logging.Formatter):
    """Render a LogRecord as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))
        return json.dumps(payload, default=_jsonable)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        for name, value in vars(exc).items():
            if not name.startswith("_") and name != "code":
                fields[f"exc_{name}"] = value
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


def get_logger(name: str) -> logging.Logger:
    """Logger for ``name`` under the caisse namespace, e.g. ``engines.penalty``."""
    return logging.getLogger(f"{_NAMESPACE}.{name}")


_state_lock = threading.Lock()
_configured = False


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: TextIO | None = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Install the JSON handler on the ``caisse`` logger.

    Only the first call has any effect until ``reset_logging`` is called.
    The namespace does not propagate to the root logger.
    """
    global _configured
    with _state_lock:
        if _configured:
            return
        _configured = True

        target = handler or logging.StreamHandler(stream or sys.stderr)
        target.setFormatter(StructuredFormatter())

        namespace_logger = logging.getLogger(_NAMESPACE)
        namespace_logger.setLevel(level)
        namespace_logger.propagate = False
        namespace_logger.addHandler(target)


def reset_logging() -> None:
    """Drop handlers and allow ``configure_logging`` again. Test use only."""
    global _configured
    with _state_lock:
        _configured = False
        namespace_logger = logging.getLogger(_NAMESPACE)
        namespace_logger.handlers.clear()
        namespace_logger.setLevel(logging.WARNING)
        namespace_logger.propagate = True
