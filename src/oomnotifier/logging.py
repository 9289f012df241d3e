from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime
from typing import Any


_CONFIGURED = False

# Structured fields the pipeline passes through ``extra=``.
_EXTRA_KEYS = ("victim_pid", "comm", "sink", "error", "duration_ms")

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_KEYS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def configure_logging(*, level: str | None = None, fmt: str | None = None) -> None:
    """Idempotent logging setup for the daemon's own diagnostics.

    - One JSON object per line on stdout (``LOG_FORMAT=text`` for a
      human-readable console format).
    - Respects the LOG_LEVEL env var.
    - Quiets kafka-python, which logs every reconnect attempt at INFO.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    log_level = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    log_format = (fmt or os.getenv("LOG_FORMAT") or "json").lower()

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(log_level)
    if log_format == "text":
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    else:
        handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    logging.getLogger("kafka").setLevel(max(logging.WARNING, root.level))

    _CONFIGURED = True
