"""Logging setup."""

import json
import logging

from app.core.config import LogFormatEnum, settings

SIMPLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logging(level: str | None = None, fmt: LogFormatEnum | None = None) -> None:
    """Configure the root logger once at startup."""
    level = level or settings.log_level.value
    fmt = fmt or settings.log_format

    handler = logging.StreamHandler()
    if fmt == LogFormatEnum.json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(SIMPLE_FORMAT))

    logging.basicConfig(level=level, handlers=[handler], force=True)
    # Quiet chatty client libraries below WARNING
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(max(logging.getLevelName(level), logging.WARNING))
