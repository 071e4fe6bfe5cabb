"""JSON logging for the API process and the uvicorn loggers."""
from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any, Dict

from career_os.core.config import Settings

# attributes every LogRecord carries; anything else came in through ``extra``
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
}
SENSITIVE_KEYS = frozenset({"access_token", "refresh_token", "client_secret", "authorization"})
REDACTED = "[redacted]"


class JSONLogFormatter(logging.Formatter):
    """Render each record as a single JSON object.

    Fields passed through ``extra`` are merged into the object. Keys that can
    carry OAuth secrets are masked so plaintext tokens never reach the logs.
    """

    def __init__(self, app_env: str) -> None:
        super().__init__()
        self.app_env = app_env

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "environment": self.app_env,
        }
        entry.update(extra_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: REDACTED if key.lower() in SENSITIVE_KEYS else value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS
    }


def configure_logging(settings: Settings) -> None:
    """Send root and uvicorn logs through one JSON handler at ``LOG_LEVEL``."""
    handler = logging.StreamHandler()
    handler.setFormatter(JSONLogFormatter(settings.app_env))

    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, handlers=[handler], force=True)

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        server_logger = logging.getLogger(name)
        server_logger.handlers = [handler]
        server_logger.setLevel(level)
