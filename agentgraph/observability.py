# agentgraph/observability.py
"""
Logging setup with run context propagation.

The executor sets ``run_id``, ``thread_id`` and ``node`` on a ContextVar as a
run progresses; every record logged underneath picks them up, so plain
``logger.info()`` calls in node code are correlated with their run.
"""

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

run_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar("run_context", default=None)


@contextmanager
def bind_context(**fields: Any):
    """Add fields to the run context for the duration of the block."""
    current = run_context.get() or {}
    token = run_context.set({**current, **{k: v for k, v in fields.items() if v is not None}})
    try:
        yield
    finally:
        run_context.reset(token)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, run context included."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(run_context.get() or {})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        context = run_context.get() or {}
        prefix = " ".join(f"{k}={v}" for k, v in context.items())
        message = super().format(record)
        return f"{message} [{prefix}]" if prefix else message


def configure_logging(level: str = "INFO", json_format: bool = False) -> None:
    handler = logging.StreamHandler()
    if json_format:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(HumanReadableFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger("agentgraph")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
    root.propagate = False
