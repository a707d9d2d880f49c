"""Structured logging for the retrieval service.

Each record is one JSON object per line. Attributes passed through ``extra``
with the ``ctx_`` prefix are collected under ``context`` with the prefix
removed; ``log_context`` builds such mappings.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson

LOG_LEVEL_ENV = "DOCQA_LOG_LEVEL"
LOG_FORMAT_ENV = "DOCQA_LOG_FORMAT"
CONTEXT_PREFIX = "ctx_"
_QUIET_LOGGERS = ("sentence_transformers", "urllib3", "httpx")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = {
            key[len(CONTEXT_PREFIX) :]: value
            for key, value in record.__dict__.items()
            if key.startswith(CONTEXT_PREFIX)
        }
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode("utf-8")


def configure_logging(level: str | int | None = None, use_json: bool | None = None) -> None:
    """Install a single stdout handler on the root logger.

    ``level`` defaults to ``DOCQA_LOG_LEVEL`` and ``use_json`` to
    ``DOCQA_LOG_FORMAT`` (anything but ``text`` means JSON).
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    if use_json is None:
        use_json = os.environ.get(LOG_FORMAT_ENV, "json").lower() != "text"
    logging.captureWarnings(True)
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.handlers = [handler]
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = "docqa") -> logging.Logger:
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


def log_context(**fields: Any) -> dict[str, Any]:
    """``extra`` mapping for structured fields; ``None`` values are dropped."""
    return {f"{CONTEXT_PREFIX}{key}": value for key, value in fields.items() if value is not None}


__all__ = ["JsonFormatter", "configure_logging", "get_logger", "log_context"]
