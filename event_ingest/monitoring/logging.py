"""Logging setup with context injection.

Features:
- console handler
- JSON logs optional (easy ingestion)
- context injection (source_id/stage) without needing a big framework
"""

from __future__ import annotations

import json
import logging
import sys
import time
from typing import Any

ROOT_LOGGER = "event_ingest"
ADAPTER_LOGGER = "adapter"

_CONTEXT_KEYS = ("source_id", "stage", "city")

# ---------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        base = {
            "ts": time.time(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k in _CONTEXT_KEYS:
            if hasattr(record, k):
                base[k] = getattr(record, k)

        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)

        payload = getattr(record, "payload", None)
        if isinstance(payload, dict):
            base["payload"] = payload

        return json.dumps(base, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Format log records as human-readable text."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [record.levelname, record.name]

        ctx = []
        for k in _CONTEXT_KEYS:
            value = getattr(record, k, None)
            if value:
                ctx.append(f"{k.replace('_id', '')}={value}")
        if ctx:
            parts.append("[" + " ".join(ctx) + "]")

        parts.append(record.getMessage())
        s = " ".join(parts)

        if record.exc_info:
            s += "\n" + self.formatException(record.exc_info)

        return s


# ---------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------


def configure_logging(level: str = "INFO", *, json_logs: bool = False, stream: Any = None) -> None:
    """
    Install one console handler on the package and adapter loggers.

    Safe to call repeatedly; existing handlers are replaced.
    """
    fmt = JsonFormatter() if json_logs else TextFormatter()
    log_level = getattr(logging, level.upper(), logging.INFO)

    for name in (ROOT_LOGGER, ADAPTER_LOGGER):
        logger = logging.getLogger(name)
        logger.setLevel(log_level)
        logger.propagate = False

        for h in list(logger.handlers):
            logger.removeHandler(h)

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setLevel(log_level)
        handler.setFormatter(fmt)
        logger.addHandler(handler)


def get_adapter_logger(source_id: str) -> logging.Logger:
    """Per-adapter logger, e.g. ``adapter.allevents``."""
    return logging.getLogger(f"{ADAPTER_LOGGER}.{source_id}")


# ---------------------------------------------------------------------
# Context injection
# ---------------------------------------------------------------------


class ContextAdapter(logging.LoggerAdapter):
    """Inject context fields into log records."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = kwargs.get("extra", {})
        merged = dict(self.extra)
        merged.update(extra)
        kwargs["extra"] = merged
        return msg, kwargs


def with_context(
    logger: logging.Logger,
    *,
    source_id: str | None = None,
    stage: str | None = None,
    city: str | None = None,
) -> ContextAdapter:
    """Create a context adapter with source, stage and city info."""
    extra: dict[str, Any] = {}
    if source_id:
        extra["source_id"] = source_id
    if stage:
        extra["stage"] = stage
    if city:
        extra["city"] = city
    return ContextAdapter(logger, extra)
