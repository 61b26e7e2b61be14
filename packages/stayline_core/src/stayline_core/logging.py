"""
Logging setup for Stayline processes.

Modules log through ``logging.getLogger(__name__)`` and pass structured
context with ``extra={...}``. The JSON formatter keeps those extras.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from stayline_core.settings import get_settings

# Attributes present on every LogRecord; anything else came from ``extra``.
_RESERVED = set(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, including ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED and not key.startswith("_"):
                data[key] = value
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


_configured = False


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    Configure the root logger once per process.

    Args:
        level: Log level name, defaults to LOG_LEVEL
        fmt: "text" or "json", defaults to LOG_FORMAT
    """
    global _configured
    if _configured:
        return

    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    fmt = fmt or settings.LOG_FORMAT

    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _configured = True
