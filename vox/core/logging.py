import logging
import sys
import json
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Context var for correlation ID (the id of the playback session being served)
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_PLAIN_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Attributes every LogRecord has; anything else came in through `extra=`
_RECORD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
            "correlation_id": _correlation_id.get(),
        }

        # Add extra fields if they exist
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in log_record:
                log_record[key] = value

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_record, default=str)

def _make_formatter(fmt: str) -> logging.Formatter:
    if fmt == "plain":
        return logging.Formatter(_PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    return StructuredFormatter(datefmt="%Y-%m-%dT%H:%M:%S%z")

def setup_logging(level: str = "INFO", fmt: str = "json", log_file: Optional[Path] = None):
    root = logging.getLogger()
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_make_formatter(fmt))
    root.addHandler(handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=2_000_000, backupCount=3)
        file_handler.setFormatter(_make_formatter(fmt))
        root.addHandler(file_handler)

def set_correlation_id(cid: Optional[str]):
    _correlation_id.set(cid)

def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()
