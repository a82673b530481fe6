"""JSON log output for the CLI."""

import json
import logging
import os
import sys
from typing import Any

from .config import LOG_LEVEL_ENV


class JSONFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        """Formats a log record as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            A JSON string representation of the log record.

        """
        log_record: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
            "lineno": record.lineno,
        }
        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_record, ensure_ascii=False)


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, "WARNING")
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        return resolved if isinstance(resolved, int) else logging.WARNING
    return level


def setup_logging(level: int | str | None = None) -> None:
    """Configures the root logger with a JSON formatter on stderr.

    Stdout is left to command output so ``parse``/``show`` stay machine
    readable. The level defaults to ``$OPENWRITER_LOG_LEVEL`` (or WARNING).
    """
    root = logging.getLogger()
    # Avoid adding multiple handlers if setup is called multiple times
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
    root.setLevel(_resolve_level(level))
