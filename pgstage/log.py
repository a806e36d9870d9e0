"""Logging configuration.

Logs go to stderr; stdout belongs to whatever protocol the caller speaks.
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pgstage.config import Settings

_RESERVED_LOG_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JsonLogFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    def __init__(
        self,
        *,
        defaults: Optional[Dict[str, Any]] = None,
        fmt: Optional[str] = None,
        datefmt: Optional[str] = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._defaults = defaults or {}

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = dict(self._defaults)
        payload.update(
            {
                "timestamp": datetime.fromtimestamp(
                    record.created, tz=timezone.utc
                ).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }
        )

        for key, value in record.__dict__.items():
            if key in _RESERVED_LOG_RECORD_ATTRS:
                continue
            payload.setdefault(key, self._coerce_extra(value))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)

        return json.dumps(payload, ensure_ascii=False, default=str)

    @staticmethod
    def _coerce_extra(value: Any) -> Any:
        try:
            json.dumps(value)
        except TypeError:
            return str(value)
        return value


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.captureWarnings(True)

    formatters: Dict[str, Any] = {
        "json": {
            "()": JsonLogFormatter,
            "defaults": {"service": "pgstage"},
        },
        "text": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    }
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": formatters,
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": settings.log_format,
                    "level": level,
                }
            },
            "loggers": {
                "": {"handlers": ["default"], "level": level},
                "asyncpg": {"handlers": ["default"], "level": level, "propagate": False},
            },
        }
    )
