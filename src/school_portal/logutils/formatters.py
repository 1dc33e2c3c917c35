"""Log formatters.

``JSONFormatter`` is the production format: one object per line with the
message, source location, correlation context and the structured payload that
callers pass as ``extra={"extra_data": {...}}``. ``StandardFormatter`` and
``CompactFormatter`` are for humans.
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Any

from .context import get_context
from .masking import mask_dict, mask_sensitive_string


class JSONFormatter(logging.Formatter):
    """Serialize records as single-line JSON documents."""

    def __init__(
        self,
        include_timestamp: bool = True,
        include_context: bool = True,
        mask_sensitive: bool = True,
        extra_fields: dict[str, Any] | None = None,
    ) -> None:
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_context = include_context
        self.mask_sensitive = mask_sensitive
        self.extra_fields = extra_fields or {}

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if self.mask_sensitive:
            message = mask_sensitive_string(message)

        log_data: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": message,
        }

        if self.include_timestamp:
            log_data["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()

        log_data["source"] = {
            "file": record.pathname,
            "line": record.lineno,
            "function": record.funcName,
        }

        if self.include_context:
            log_data["context"] = get_context().to_dict()

        if record.exc_info and record.exc_info[0]:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": "".join(traceback.format_exception(*record.exc_info)),
            }

        extra = getattr(record, "extra_data", None)
        if extra:
            if self.mask_sensitive and isinstance(extra, dict):
                extra = mask_dict(extra)
            log_data["extra"] = extra

        log_data.update(self.extra_fields)

        return json.dumps(log_data, default=str)


class StandardFormatter(logging.Formatter):
    """``TIMESTAMP - LEVEL - LOGGER - [CORRELATION_ID] - MESSAGE``"""

    DEFAULT_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - [%(correlation_id)s] - %(message)s"
    DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        mask_sensitive: bool = True,
    ) -> None:
        super().__init__(
            fmt=fmt or self.DEFAULT_FORMAT,
            datefmt=datefmt or self.DEFAULT_DATE_FORMAT,
        )
        self.mask_sensitive = mask_sensitive

    def format(self, record: logging.LogRecord) -> str:
        record.correlation_id = get_context().correlation_id

        original_msg = record.msg
        if self.mask_sensitive and isinstance(original_msg, str):
            record.msg = mask_sensitive_string(original_msg)
        try:
            return super().format(record)
        finally:
            record.msg = original_msg


class CompactFormatter(logging.Formatter):
    """``[LEVEL] MESSAGE`` for CLI output."""

    LEVEL_LABELS = {
        "DEBUG": "DEBUG",
        "INFO": "INFO ",
        "WARNING": "WARN ",
        "ERROR": "ERROR",
        "CRITICAL": "CRIT ",
    }

    def __init__(self, mask_sensitive: bool = True) -> None:
        super().__init__()
        self.mask_sensitive = mask_sensitive

    def format(self, record: logging.LogRecord) -> str:
        label = self.LEVEL_LABELS.get(record.levelname, record.levelname)
        message = record.getMessage()
        if self.mask_sensitive:
            message = mask_sensitive_string(message)
        return f"[{label}] {message}"
