"""
Logging for the document access layer.

Store operations log through StoreLogger, which tags every record with the
collection and operation it belongs to. setup_logging() attaches a single
console handler to the package logger ("fireschema"); get_store() calls it
with the log_level / log_format from StoreSettings.

    simple: 2024-01-01 12:00:00 [DEBUG] fireschema.core.query: [collection:users] [query] Fetched 2 document(s)
    json:   {"time": "...", "level": "DEBUG", "name": "fireschema.core.query",
             "message": "...", "collection": "users", "operation": "query"}
"""

import json
import logging
import sys
from typing import Any, Dict, Optional

PACKAGE_LOGGER = "fireschema"

# Name of the handler owned by setup_logging; reconfiguring replaces only it
_HANDLER_NAME = "fireschema-console"

_SIMPLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class StoreLogger:
    """
    Logger bound to a collection and an operation.

    Messages get a "[collection:<path>] [<operation>]" prefix, and the same
    context is attached to the record as `store_context` for JsonFormatter.
    """

    def __init__(
        self,
        name: str,
        collection: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        self.logger = logging.getLogger(name)
        self.collection = collection
        self.operation = operation

    @property
    def context(self) -> Dict[str, str]:
        context = {}
        if self.collection:
            context["collection"] = self.collection
        if self.operation:
            context["operation"] = self.operation
        return context

    def _format_message(self, message: str) -> str:
        prefix_parts = []
        if self.collection:
            prefix_parts.append(f"[collection:{self.collection}]")
        if self.operation:
            prefix_parts.append(f"[{self.operation}]")

        if prefix_parts:
            return f"{' '.join(prefix_parts)} {message}"
        return message

    def log(self, level: int, message: str, **kwargs: Any) -> None:
        extra = dict(kwargs.pop("extra", None) or {})
        extra["store_context"] = self.context
        self.logger.log(level, self._format_message(message), extra=extra, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self.log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log(logging.ERROR, message, **kwargs)


class JsonFormatter(logging.Formatter):
    """One JSON object per record; store context becomes top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        payload.update(getattr(record, "store_context", None) or {})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(level: str = "INFO", format: str = "simple") -> logging.Logger:
    """
    Configure the package logger.

    Replaces the handler installed by an earlier call; handlers added by the
    application are left alone.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: "simple" or "json"

    Returns:
        The configured package logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    package_logger = logging.getLogger(PACKAGE_LOGGER)

    for handler in package_logger.handlers[:]:
        if handler.get_name() == _HANDLER_NAME:
            package_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(log_level)
    if format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_SIMPLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    package_logger.addHandler(handler)
    package_logger.setLevel(log_level)
    return package_logger


def reset_logging() -> None:
    """Remove the handler installed by setup_logging and reset the package level."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in package_logger.handlers[:]:
        if handler.get_name() == _HANDLER_NAME:
            package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)


def get_logger(
    name: str,
    collection: Optional[str] = None,
    operation: Optional[str] = None,
) -> StoreLogger:
    """
    Get a store logger.

    Args:
        name: Logger name (usually __name__)
        collection: Collection path the operation runs against
        operation: Operation name (e.g. "query", "update")
    """
    return StoreLogger(name, collection, operation)
