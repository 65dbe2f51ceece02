"""
Structured Logging Utilities for MedSync
Transfer ID propagation and optional JSON log lines
"""

import json
import logging
from contextvars import ContextVar
from datetime import datetime, UTC
from typing import Any, Dict, Optional

# Set per listener connection and per client send so every log line of one
# transfer can be correlated
transfer_id_ctx: ContextVar[str] = ContextVar("transfer_id", default="")

ROOT_LOGGER_NAME = "medsync"

PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class StructuredLogFormatter(logging.Formatter):
    """
    One JSON object per log line, tagged with the active transfer_id

    Fields passed through log_with_context land at the top level of the object.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        transfer_id = transfer_id_ctx.get()
        if transfer_id:
            entry["transfer_id"] = transfer_id

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        entry.update(getattr(record, "extra", None) or {})

        return json.dumps(entry, default=str)


def _stream_handler(structured: bool) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredLogFormatter() if structured else logging.Formatter(PLAIN_FORMAT))
    return handler


def get_logger(name: str, structured: bool = False) -> logging.Logger:
    """
    Logger for `name`; with structured=True it gets its own JSON handler and
    stops propagating to the package logger.
    """
    logger = logging.getLogger(name)

    if structured and not logger.handlers:
        logger.addHandler(_stream_handler(structured=True))
        logger.propagate = False

    return logger


def configure_logging(level: str = "INFO", structured: bool = False) -> logging.Logger:
    """
    Install a single handler on the package logger.

    Safe to call more than once; the previous handler is replaced.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level.upper())

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(_stream_handler(structured))

    return logger


def log_with_context(
    logger: logging.Logger,
    level: str,
    message: str,
    fields: Optional[Dict[str, Any]] = None
) -> None:
    """
    Log `message` with `fields` attached, plus the current transfer_id if any

    Usage:
        log_with_context(logger, "info", "Snapshot imported", {"rows": 12})
    """
    payload = dict(fields or {})

    transfer_id = transfer_id_ctx.get()
    if transfer_id:
        payload["transfer_id"] = transfer_id

    getattr(logger, level.lower())(message, extra={"extra": payload})
