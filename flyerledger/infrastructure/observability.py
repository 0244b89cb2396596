"""Structured Logging: JSON log lines carrying flyer and price identifiers.

Invariants:
    - Every line has timestamp (the record's creation time, UTC), level, logger, message
    - Identifying extras (flyer_id, product_master_id, store_id, record_id, operation,
      error_code, transition statuses, archive counts) are surfaced when present;
      any other extra is dropped
    - setup_logging is idempotent: calling it twice leaves exactly one handler installed

Design Decisions:
    - stdlib logging + JSONFormatter, no logging framework dependency
    - SQLAlchemy engine logs capped at WARNING unless the root level is DEBUG
"""

import json
import logging
from datetime import datetime, timezone

STRUCTURED_FIELDS = (
    "operation", "flyer_id", "store_id", "product_master_id", "record_id",
    "error_code", "from_status", "to_status", "archived_count", "days",
)

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_installed_handler: logging.Handler | None = None


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, getattr(record, key)) for key in STRUCTURED_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    """Install the package's root handler, replacing one installed earlier."""
    global _installed_handler
    root = logging.getLogger()
    if _installed_handler is not None:
        root.removeHandler(_installed_handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT))
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if root.level > logging.DEBUG:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _installed_handler = handler
    return handler
