"""
Crawler Logging

Centralizes logging setup for content synchronisation: a console handler for
operators plus an optional JSON-lines file for machine consumption. Secrets
(repository passwords, authorization headers) are masked before a record is
serialised, and every run carries a short correlation id.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

from CmsToIndex.ContentSync.config.models import LoggingConfig

ROOT_LOGGER_NAME = "CmsToIndex.ContentSync"

_SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "token", "secret", "password"}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with secret-looking fields replaced.

    Examples:
        >>> mask_sensitive_data({"password": "hunter2", "path": "/content/site"})
        {'password': '***masked***', 'path': '/content/site'}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        elif isinstance(value, dict):
            masked[key] = mask_sensitive_data(value)
        else:
            masked[key] = value
    return masked


def generate_correlation_id() -> str:
    """Twelve character hex id linking the log lines of one run."""
    return uuid.uuid4().hex[:12]


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        entry = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "transaction_id": getattr(record, "transaction_id", None),
            "source": getattr(record, "source", None),
            "path": getattr(record, "path", None),
        }
        extra = getattr(record, "extra_fields", None)
        if isinstance(extra, dict):
            entry.update(extra)
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(entry), default=str)


def setup_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Configure console and optional JSON-lines handlers on the package logger.

    Calling it again replaces the handlers it installed earlier.
    """
    cfg = config or LoggingConfig()
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_contentsync_managed", False):
            logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    console_formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    stream_handler.setFormatter(console_formatter)
    stream_handler._contentsync_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if cfg.json_path:
        path = Path(cfg.json_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(path, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(JSONFormatter())
        file_handler._contentsync_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = True
    return logger


__all__ = ["JSONFormatter", "generate_correlation_id", "mask_sensitive_data", "setup_logging"]
