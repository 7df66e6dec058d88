"""Structured logging configuration."""

from __future__ import annotations

import hashlib
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from authcore.core.config import AppSettings


class JsonFormatter(logging.Formatter):
    """A lightweight JSON log formatter."""

    _RESERVED_ATTRS = {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self._RESERVED_ATTRS
        }

        if extra:
            log_entry["extra"] = extra

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def token_preview(token: Optional[str]) -> Optional[str]:
    """Return a short, non-reversible fingerprint of a token for diagnostics.

    Raw tokens never reach the logs; the first eight hex characters of the
    token's SHA-256 digest are enough to correlate log lines with a session.
    """

    if not token:
        return None
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:8]


def secret_preview(secret: Optional[str]) -> str:
    """Return the first characters of a secret followed by an ellipsis."""

    if not secret:
        return "<unset>"
    return f"{secret[:4]}..."


def configure_logging(settings: AppSettings) -> None:
    """Configure root logger and suppress overly verbose third-party loggers."""

    level = getattr(logging, settings.log_level, logging.INFO)

    handler = logging.StreamHandler(stream=sys.stdout)
    if settings.log_json:
        handler.setFormatter(JsonFormatter(settings.service_name))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Align uvicorn/fastapi loggers with our configuration.
    for logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error", "fastapi"):
        logging.getLogger(logger_name).handlers = []
        logging.getLogger(logger_name).propagate = True
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
