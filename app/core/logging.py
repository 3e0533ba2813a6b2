"""JSON log lines carrying the request id and the pipeline stage/session/node."""

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from app.core.request_context import PIPELINE_FIELDS, get_request_id, pipeline_context

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Attributes every LogRecord has; anything else on a record came from `extra=`.
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "request_id", *PIPELINE_FIELDS}


class RequestIdFilter(logging.Filter):
    """Copy the request id and pipeline identifiers from context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "unknown"
        for name, value in pipeline_context().items():
            setattr(record, name, value or "")
        return True


class StructuredJsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_payload: dict[str, object] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "unknown"),
        }
        for name in PIPELINE_FIELDS:
            value = getattr(record, name, "")
            if value:
                log_payload[name] = value
        log_payload.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_") and value is not None
        )
        if record.exc_info:
            log_payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_payload["stack_info"] = record.stack_info
        try:
            return json.dumps(log_payload, default=str)
        except (TypeError, ValueError):
            return super().format(record)


def configure_logging(level_name: str, log_file: str | None = None) -> None:
    """Replace the root handlers with JSON output to stderr and, optionally, a rotating file."""
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name.upper(), logging.INFO))
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_path,
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
                encoding="utf-8",
            )
        )

    formatter = StructuredJsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S%z")
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdFilter())
        root_logger.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
