"""
Structured logging for the API and workers.

Every record emitted under the ``presskit`` logger carries the current
request id (from a ContextVar bound by RequestIdMiddleware) and whatever was
passed through ``extra=``. Production renders one JSON object per line;
development renders a readable ``key=value`` line.
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

LOGGER_NAME = "presskit"
MAX_FIELD_LENGTH = 500

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("x", 0, "x", 0, "x", None, None))) | {"message", "asctime"}

_LATENCY_BUCKETS = ((10, "<10ms"), (100, "10-100ms"), (500, "100-500ms"), (1000, "500-1000ms"))


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return default if rid is None else rid


@contextmanager
def bind_request_id(rid: str) -> Iterator[str]:
    """Make ``rid`` the current request id for the duration of the block."""
    token = request_id_ctx_var.set(rid)
    try:
        yield rid
    finally:
        request_id_ctx_var.reset(token)


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    if latency_ms is None:
        return "unknown"
    for ceiling, label in _LATENCY_BUCKETS:
        if latency_ms < ceiling:
            return label
    return ">=1000ms"


def truncate(value: Any, limit: int = MAX_FIELD_LENGTH) -> str:
    try:
        text = str(value)
    except Exception:
        return "<unserializable>"
    return text if len(text) <= limit else f"{text[:limit]}...<truncated>"


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class _StructuredFormatter(logging.Formatter):
    def timestamp(self, record: logging.LogRecord) -> str:
        return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")

    def fields(self, record: logging.LogRecord) -> Dict[str, Any]:
        """Attributes that arrived through ``extra=``."""
        return {k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS and k != "request_id"}


class JsonFormatter(_StructuredFormatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
            **self.fields(record),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(_StructuredFormatter):
    def format(self, record: logging.LogRecord) -> str:
        parts = [self.timestamp(record), record.levelname, f"[{LOGGER_NAME}]"]
        rid = getattr(record, "request_id", None)
        if rid:
            parts.append(f"[rid={rid}]")
        parts.append(record.getMessage())
        parts.extend(f"{k}={v}" for k, v in self.fields(record).items())
        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(env: str = "development", level: str = "INFO") -> None:
    """Install a single stdout handler on the presskit logger."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(RequestIdFilter())

    logger = get_logger()
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers = [handler]
    logger.propagate = True

    # uvicorn keeps its own handlers; stop its records reaching the root twice
    for name in ("uvicorn", "uvicorn.error"):
        logging.getLogger(name).propagate = False


def log_event(level: str, msg: str, *, request_id: Optional[str] = None, **fields: Any) -> None:
    """Emit a structured event; string-ish field values are truncated, None values dropped."""
    logger = get_logger()
    if not logger.handlers:
        configure_logging()

    payload: Dict[str, Any] = {"request_id": request_id or get_request_id()}
    for key, value in fields.items():
        if value is None:
            continue
        payload[key] = value if isinstance(value, (bool, int, float)) else truncate(value)

    getattr(logger, level, logger.info)(msg, extra=payload)
