"""
Error taxonomy and error-handling helpers for the document access layer.

Client-side validation failures are raised synchronously, before any store
I/O, as subclasses of FireSchemaError. Failures raised by the backing store
client (network, permission, missing index, ...) are never wrapped: they
propagate with their original classification so callers can tell transient
conditions from permanent ones.
"""

import logging
from typing import Any, Optional


class FireSchemaError(Exception):
    """Base class for all errors raised by fireschema itself."""


class InvalidArgumentError(FireSchemaError, ValueError):
    """
    Raised when a caller passes an argument the layer cannot accept.

    Covers null/empty required arguments, malformed field paths or selectors,
    value-set cardinality outside the store limit, bad limits and cursor
    arity mismatches.
    """

    def __init__(self, argument: str, message: str):
        self.argument = argument
        super().__init__(f"Invalid argument '{argument}': {message}")


class PreconditionFailedError(FireSchemaError, RuntimeError):
    """Raised when an operation is invoked in a state that cannot succeed."""


class NotFoundError(FireSchemaError, LookupError):
    """Raised when a document the caller required does not exist."""

    def __init__(self, collection: str, key: str):
        self.collection = collection
        self.key = key
        super().__init__(f"Document '{key}' not found in collection '{collection}'")


class ConversionError(FireSchemaError, TypeError):
    """Raised when a stored value does not fit the record field's declared type."""

    def __init__(
        self,
        record_type: str,
        field_name: str,
        value: Any,
        detail: Optional[str] = None,
    ):
        self.record_type = record_type
        self.field_name = field_name
        self.value_type = type(value).__name__
        message = (
            f"Cannot convert stored value of type {self.value_type} "
            f"into {record_type}.{field_name}"
        )
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


def log_on_exception(
    logger: Any,
    operation: str,
    level: int = logging.WARNING,
    include_traceback: bool = False,
):
    """
    Context manager for logging exceptions without swallowing them.

    Usage:
        with log_on_exception(logger, "query fetch", level=logging.ERROR):
            documents = collection.run_query(descriptor)

    Args:
        logger: logging.Logger (or StoreLogger) used for the message
        operation: Operation description for the log message
        level: Log level (default: WARNING)
        include_traceback: Whether to include stack trace in log
    """

    class ExceptionLogger:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            if exc_val is not None:
                logger.log(
                    level,
                    f"[{operation}] Failed: {exc_type.__name__}: {exc_val}",
                    exc_info=include_traceback,
                )
            # Never suppress: store errors reach the caller unchanged
            return False

    return ExceptionLogger()
