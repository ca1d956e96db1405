"""
Logging setup for the journal service.

Store, gate and load-check code log through `get_logger(__name__)` and pass
journal context (petition_id, constituency_id, journal_id, ...) via `extra=`.
`configure_logging` picks the output: a one-line console format for humans,
or one JSON object per line when LOG_JSON is set, with the `extra=` context
lifted to top-level keys.
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Attributes every LogRecord carries; anything else arrived through `extra=`.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "extra"}


def _context_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Collect the `extra=` context attached to a record."""
    fields = {k: v for k, v in vars(record).items() if k not in _RESERVED_ATTRS}
    nested = getattr(record, "extra", None)
    if isinstance(nested, dict):
        fields.update(nested)
    return fields


def _json_formatter(record: logging.LogRecord) -> str:
    """Render a log record as a single JSON line."""
    payload: Dict[str, Any] = {
        "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
        "level": record.levelname,
        "logger": record.name,
        "message": record.getMessage(),
        **_context_fields(record),
    }
    if record.exc_info:
        payload["exc_info"] = logging.Formatter().formatException(record.exc_info)
    return json.dumps(payload, default=str)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        return _json_formatter(record)


def configure_logging(
    level: str = "INFO",
    json_logs: bool = False,
    force: bool = True,
) -> None:
    """
    Install the root handler.

    With `force=False` an already configured root logger is left alone, so
    embedding applications keep their own setup.
    """
    if not force and logging.getLogger().handlers:
        return

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "format": "%(asctime)s %(levelname)-7s %(name)s: %(message)s",
                },
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "json" if json_logs else "console",
                }
            },
            "root": {"handlers": ["stderr"], "level": level},
            # psycopg_pool is chatty about connection churn at INFO.
            "loggers": {"psycopg.pool": {"level": "WARNING"}},
        }
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "JsonFormatter"]
