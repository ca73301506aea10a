"""
Store Adapters

Backing stores the collection, query and update layers run against.

Public API:
- get_store(): Factory returning the process-wide store for the configured backend
- reset_store(): Drop the store singleton (and its connection)
- DocumentStore / CollectionHandle / DocumentHandle: the store port
- RawDocument, WriteResult: store-neutral results

Usage:
    from fireschema.stores import get_store

    store = get_store()            # FIRESCHEMA_BACKEND=firestore|mongodb|memory
    users = store.collection("users")
    snapshot = users.document("u1").get()

Adapters are imported lazily so only the selected backend's client library
is loaded.
"""

import logging
from typing import Optional

from ..common.config import StoreSettings, get_settings
from ..common.logger import setup_logging
from .base import CollectionHandle, DocumentHandle, DocumentStore, RawDocument, WriteResult

logger = logging.getLogger(__name__)

# Singleton store instance
_store_instance: Optional[DocumentStore] = None


def create_store(settings: StoreSettings) -> DocumentStore:
    """
    Build a store for the given settings (no singleton involved).

    Args:
        settings: Validated store settings

    Returns:
        DocumentStore implementation for settings.backend
    """
    for issue in settings.validate_backend_config():
        logger.warning(issue)

    if settings.backend == "mongodb":
        from .mongo import MongoStore
        return MongoStore(mongodb_uri=settings.mongodb_uri, database=settings.mongo_db_name)
    if settings.backend == "memory":
        from .memory import MemoryStore
        return MemoryStore()

    from .firestore import FirestoreStore
    return FirestoreStore(
        project_id=settings.project_id,
        database=settings.database,
        emulator_host=settings.emulator_host,
    )


def get_store() -> DocumentStore:
    """
    Get the store instance.

    Factory function that returns the store for the configured backend.
    Uses singleton pattern for connection pooling. The first call also
    applies the configured log level and format to the package logger.

    Returns:
        DocumentStore implementation

    Raises:
        pydantic.ValidationError: If the FIRESCHEMA_* settings are invalid
    """
    global _store_instance

    if _store_instance is None:
        settings = get_settings()
        setup_logging(settings.log_level, settings.log_format)
        _store_instance = create_store(settings)
        logger.info(f"Initialized {settings.backend} store")

    return _store_instance


def reset_store() -> None:
    """
    Reset the store singleton.

    Used for testing or when configuration changes.
    """
    global _store_instance

    if _store_instance is not None:
        _store_instance.close()

    _store_instance = None
    logger.info("Store singleton reset")


__all__ = [
    "get_store",
    "reset_store",
    "create_store",
    "DocumentStore",
    "CollectionHandle",
    "DocumentHandle",
    "RawDocument",
    "WriteResult",
]
