"""
Logging configuration - single setup for the API and the dispatch worker.

Call setup_logging() once at startup. All modules then use:
    import logging
    logger = logging.getLogger(__name__)

Supports two formats:
- "text": Human-readable with timestamps and module names
- "json": JSON lines for log aggregation
"""
import json
import logging
import os
import sys

from pipeline_journey.config import settings
from pipeline_journey.core.clock import isoformat_z, utcnow

# Extra fields picked up by the JSON formatter
CONTEXT_FIELDS = ("lead_id", "stage_id", "schedule_id", "worker_id", "attempt", "status_code")


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter for production use."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": isoformat_z(utcnow()),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }

        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                log_entry[key] = str(getattr(record, key))

        return json.dumps(log_entry)


class TextFormatter(logging.Formatter):
    """Human-readable log formatter for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )


_initialized = False


def setup_logging(level: str = None, fmt: str = None, log_file: str = None):
    """Configure the root logger. Safe to call more than once.

    Args:
        level: Log level override (default: settings.LOG_LEVEL)
        fmt: "text" or "json" (default: settings.LOG_FORMAT)
        log_file: Optional file path (default: settings.LOG_FILE)
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    level = level or settings.LOG_LEVEL
    fmt = fmt or settings.LOG_FORMAT
    log_file = log_file or settings.LOG_FILE

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    formatter = JSONFormatter() if fmt == "json" else TextFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Quiet down noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logging.getLogger("pipeline_journey").info(
        "Logging configured: level=%s, format=%s%s",
        level, fmt, f", file={log_file}" if log_file else ""
    )
