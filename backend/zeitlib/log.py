"""
Structured JSON logging for the engine.

Every record becomes one JSON line, written to a rotating log file and to
stderr. Modules obtain child loggers via ``get_logger('overtime')``.
"""
import json as _json
import logging
import logging.handlers
from datetime import datetime as _dt, timezone as _tz
from typing import Optional

from .config import get_settings

ROOT_LOGGER = 'zeit'


class _JsonFormatter(logging.Formatter):
    """Emit log records as single-line JSON objects."""
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": _dt.fromtimestamp(record.created, tz=_tz.utc).strftime('%Y-%m-%dT%H:%M:%S.') + f"{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return _json.dumps(entry, ensure_ascii=False)


_configured = False


def setup_logging(log_file: Optional[str] = None, level: Optional[str] = None) -> logging.Logger:
    """Attach file + stderr handlers to the 'zeit' logger (once per process)."""
    global _configured
    logger = logging.getLogger(ROOT_LOGGER)
    if _configured:
        return logger

    settings = get_settings()
    log_file = log_file or settings.log_file
    level_name = (level or settings.log_level).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    try:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=10 * 1024 * 1024, backupCount=3
        )
        file_handler.setFormatter(_JsonFormatter())
        logger.addHandler(file_handler)
    except OSError as e:
        # read-only filesystem: stderr only
        logger.warning("Logdatei %s nicht beschreibbar: %s", log_file, e)

    stderr_handler = logging.StreamHandler()
    stderr_handler.setFormatter(_JsonFormatter())
    logger.addHandler(stderr_handler)
    _configured = True
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
