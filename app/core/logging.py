"""Logging setup: plain text for development, one JSON object per line in production."""

import json
import logging
import sys
from datetime import datetime, timezone

from app.core.config import settings

# Attributes passed via ``extra=`` that are copied into JSON records
CONTEXT_FIELDS = ("backend_id", "client_key", "attempt", "outcome")

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _quiet_libraries(level: int) -> None:
    # httpx logs every backend request at INFO, including the URL
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(level if settings.app_debug else logging.WARNING)


def setup_logging(level: str | None = None, json_output: bool | None = None) -> None:
    """Install a single stdout handler on the root logger.

    Arguments default to ``LOG_LEVEL`` / ``LOG_JSON`` from settings.
    """
    numeric_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    use_json = settings.log_json if json_output is None else json_output

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if use_json else logging.Formatter(TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    _quiet_libraries(numeric_level)
