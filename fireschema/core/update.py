"""
Update Builder

Accumulates field-level mutations against one document and commits them as
a single atomic write:

    users.update("u1", lambda u: (
        u.set(fields(User).display_name, "Ann")
         .increment("loginCount", 1)
         .array_union("tags", "beta")
         .set_server_timestamp("updatedAt")
    ))

At most one mutation is kept per field path; registering another mutation
for the same path replaces the earlier one.
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, Mapping

from ..common.error_handling import (
    InvalidArgumentError,
    PreconditionFailedError,
    log_on_exception,
)
from ..common.logger import get_logger
from ..stores.base import DocumentHandle, WriteResult
from .converter import to_storage_value
from .field_path import FieldPath, resolve_path
from .mutations import DELETE_FIELD, SERVER_TIMESTAMP, ArrayRemove, ArrayUnion, Increment


class UpdateBuilder:
    """
    Mutation accumulator bound to one document.

    Chain methods mutate this builder and return it. Not safe for concurrent
    use from several threads.
    """

    def __init__(self, document: DocumentHandle, collection: str = ""):
        if document is None:
            raise InvalidArgumentError("document", "document must not be None")
        self._document = document
        self._mutations: Dict[FieldPath, Any] = {}
        self._log = get_logger(__name__, collection=collection or None, operation="update")

    @property
    def document(self) -> DocumentHandle:
        return self._document

    @property
    def mutations(self) -> Mapping[FieldPath, Any]:
        """Read-only view of the accumulated mutation set."""
        return MappingProxyType(self._mutations)

    def __len__(self) -> int:
        return len(self._mutations)

    def _register(self, path: Any, value: Any) -> "UpdateBuilder":
        field_path = resolve_path(path)
        if field_path.is_document_id:
            raise InvalidArgumentError(
                "path", "the document id is the storage key and cannot be updated"
            )
        if field_path in self._mutations:
            self._log.debug(f"Replacing mutation for '{field_path}'")
            # Re-insert so commit order follows the latest registration
            del self._mutations[field_path]
        self._mutations[field_path] = value
        return self

    def set(self, path: Any, value: Any) -> "UpdateBuilder":
        """Replace the field with a literal value (records are stored as maps)."""
        return self._register(path, to_storage_value(value))

    def delete(self, path: Any) -> "UpdateBuilder":
        """Remove the field from the document."""
        return self._register(path, DELETE_FIELD)

    def set_server_timestamp(self, path: Any) -> "UpdateBuilder":
        """Set the field to the store's commit timestamp."""
        return self._register(path, SERVER_TIMESTAMP)

    def increment(self, path: Any, delta: Any) -> "UpdateBuilder":
        """Add delta (int or float, may be negative) to the numeric field."""
        return self._register(path, Increment(delta))

    def array_union(self, path: Any, *elements: Any) -> "UpdateBuilder":
        """Add each element not already present in the array field."""
        if not elements:
            raise InvalidArgumentError("elements", "array_union needs at least one element")
        return self._register(path, ArrayUnion(tuple(to_storage_value(e) for e in elements)))

    def array_remove(self, path: Any, *elements: Any) -> "UpdateBuilder":
        """Remove every occurrence of each element from the array field."""
        if not elements:
            raise InvalidArgumentError("elements", "array_remove needs at least one element")
        return self._register(path, ArrayRemove(tuple(to_storage_value(e) for e in elements)))

    def commit(self) -> WriteResult:
        """
        Apply all accumulated mutations in one atomic write.

        Returns:
            WriteResult acknowledged by the store

        Raises:
            PreconditionFailedError: If no mutation was registered (no I/O made)
        """
        if not self._mutations:
            raise PreconditionFailedError("No update operations specified.")

        self._log.debug(
            f"Committing {len(self._mutations)} mutation(s) to '{self._document.key}': "
            f"{', '.join(str(p) for p in self._mutations)}"
        )
        with log_on_exception(self._log, "commit", level=logging.ERROR):
            result = self._document.update(dict(self._mutations))

        self._log.info(f"Updated document '{self._document.key}'")
        return result

    def __repr__(self) -> str:
        return f"UpdateBuilder({self._document.key!r}, mutations={len(self._mutations)})"
