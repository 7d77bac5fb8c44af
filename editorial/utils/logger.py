"""Structured JSON logging for the editorial pipeline."""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

# Extra attributes copied from a LogRecord into the JSON entry when present
STRUCTURED_FIELDS = (
    "content_id",
    "stage",
    "duration_ms",
    "endpoint",
    "method",
    "status_code",
    "response_time",
)


class JSONFormatter(logging.Formatter):
    """Format log records as JSON for structured logging."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = self.formatException(record.exc_info)
        for name in STRUCTURED_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)
        return json.dumps(log_entry, default=str)


def setup_logging(log_dir="logs", level="INFO"):
    """Set up structured JSON logging to file (with rotation) and console."""
    os.makedirs(log_dir, exist_ok=True)

    root_logger = logging.getLogger()

    # Avoid adding duplicate handlers if called multiple times
    if root_logger.handlers:
        return root_logger

    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s")
    )

    # 10 MB per file, keep 5 backups
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, "editorial.log"),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(JSONFormatter())

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    return root_logger
