"""Logging utilities for the RAG core.

Records are rendered as JSON lines. Keyword fields passed through
``extra={"ctx_*": ...}`` or bound with :func:`log_context` appear as top-level
keys, so one processing run can be followed by its ``ctx_run_id``.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

import orjson

_DEFAULT_LEVEL = os.environ.get("ESGRAG_LOG_LEVEL", "INFO")
_JSON_DEFAULT = os.environ.get("ESGRAG_LOG_FORMAT", "json").lower() != "text"
_CONTEXT: ContextVar[dict[str, Any]] = ContextVar("esg_rag_log_context", default={})


class ContextFilter(logging.Filter):
    """Copy fields bound by :func:`log_context` onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _CONTEXT.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """Lightweight JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        payload.update({key: value for key, value in vars(record).items() if key.startswith("ctx_")})
        return orjson.dumps(payload, default=str).decode("utf-8")


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Bind ``ctx_<name>`` fields to every record logged inside the block."""
    bound = {**_CONTEXT.get(), **{f"ctx_{key}": value for key, value in fields.items()}}
    token = _CONTEXT.set(bound)
    try:
        yield
    finally:
        _CONTEXT.reset(token)


def configure_logging(level: str | int = _DEFAULT_LEVEL, use_json: bool = _JSON_DEFAULT) -> None:
    """Route every logger to a single stdout handler."""
    logging.captureWarnings(True)
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.handlers = [handler]


def get_logger(name: str = "esg_rag") -> logging.Logger:
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


__all__ = ["ContextFilter", "JsonFormatter", "configure_logging", "get_logger", "log_context"]
