"""
Structured JSON logging for the parts ledger.

Every record is one JSON object:

    {"ts": ..., "level": "INFO", "logger": "parts_ledger.services.sale_recorder",
     "event": "sale_recorded", "correlation_id": <transaction id>,
     "product_id": ..., "sale_price": "5.00", ...}

Ledger values are rendered the way reports show them: money and costs as
exact decimal strings (never floats), UUIDs and dates as strings, periods as
"YYYY-MM" and batch statuses by value.  A PartsLedgerError attached to a
record becomes an ``error`` object carrying its code and structured fields.
"""

__all__ = [
    "CONTEXT_FIELDS",
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
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

from parts_ledger.domain.periods import LedgerPeriod

# correlation_id carries the sale's transaction_id while a sale is recorded
CONTEXT_FIELDS = ("correlation_id", "product_id", "period")

_EMPTY: Mapping[str, str] = MappingProxyType({})


def _ledger_value(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, LedgerPeriod):
        return obj.code
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------


class LogContext:
    """
    Ledger fields attached to every record logged in the current thread or
    task: the sale transaction, the product being sold and the period being
    closed.
    """

    _fields: ContextVar[Mapping[str, str]] = ContextVar("ledger_log_fields", default=_EMPTY)

    @staticmethod
    def _merged(current: Mapping[str, str], values: dict[str, Any]) -> Mapping[str, str]:
        unknown = set(values) - set(CONTEXT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {', '.join(sorted(unknown))}")
        merged = dict(current)
        for name, value in values.items():
            if value is not None:
                merged[name] = _ledger_value(value) if not isinstance(value, str) else value
        return MappingProxyType(merged)

    @classmethod
    def set(cls, **values: Any) -> None:
        """Set context fields.  None leaves a field unchanged."""
        cls._fields.set(cls._merged(cls._fields.get(), values))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(cls._fields.get())

    @classmethod
    def clear(cls) -> None:
        cls._fields.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **values: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a block, then restore the previous ones."""
        token = cls._fields.set(cls._merged(cls._fields.get(), values))
        try:
            yield cls
        finally:
            cls._fields.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_STDLIB_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


def _error_object(exc: BaseException) -> dict[str, Any]:
    error: dict[str, Any] = {"type": type(exc).__name__, "message": str(exc)}
    code = getattr(exc, "code", None)
    if code is not None:
        error["code"] = code
    # Structured fields of PartsLedgerError subclasses (product_id, requested, ...)
    for key, value in vars(exc).items():
        if not key.startswith("_") and key not in error:
            error[key] = value
    return error


class StructuredFormatter(logging.Formatter):
    """Formats each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, value in vars(record).items():
            if key not in _STDLIB_KEYS and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload["error"] = _error_object(record.exc_info[1])
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_ledger_value)


# ---------------------------------------------------------------------------
# Logger factory
# ---------------------------------------------------------------------------

_LOGGER_PREFIX = "parts_ledger"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the parts_ledger namespace."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach the JSON handler to the parts_ledger logger.  Only the first call
    has an effect; ``level`` accepts LedgerSettings.log_level names.
    """
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    ledger_logger = logging.getLogger(_LOGGER_PREFIX)
    ledger_logger.setLevel(level.upper() if isinstance(level, str) else level)
    ledger_logger.propagate = False

    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    ledger_logger.addHandler(h)


def reset_logging() -> None:
    """Detach handlers and allow configure_logging() to run again.  Tests only."""
    global _configured
    with _lock:
        _configured = False
    ledger_logger = logging.getLogger(_LOGGER_PREFIX)
    ledger_logger.handlers.clear()
    ledger_logger.setLevel(logging.WARNING)
    ledger_logger.propagate = True
