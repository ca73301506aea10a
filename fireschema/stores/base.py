"""
Store Interface Definitions

Defines the abstract port the query, update and collection layers talk to.
Each backing store (Firestore, MongoDB, in-memory) implements it, so the
core never depends on one client SDK.

    DocumentStore       -> named collections, connection lifecycle
    CollectionHandle    -> document handles, query execution
    DocumentHandle      -> read / overwrite / atomic partial update / delete
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from ..core.field_path import FieldPath
    from ..core.query import QueryDescriptor


@dataclass
class WriteResult:
    """
    Result of a write operation.

    Attributes:
        update_time: Commit timestamp reported by the store (None if the
            store does not report one)
        matched_count: Number of documents that matched the write
        modified_count: Number of documents actually modified
        upserted_id: Key of a document created by the write (if any)
    """
    update_time: Optional[Any] = None
    matched_count: int = 1
    modified_count: int = 1
    upserted_id: Optional[str] = None


@dataclass(frozen=True)
class RawDocument:
    """
    Store-neutral document snapshot.

    Attributes:
        key: Storage key of the document
        data: Stored field map (empty when the document does not exist)
        exists: Whether the document exists
        native: The backend's own snapshot object, used as a cursor anchor
    """
    key: str
    data: Dict[str, Any] = field(default_factory=dict)
    exists: bool = True
    native: Any = field(default=None, compare=False, repr=False)


class DocumentHandle(ABC):
    """Reference to one document within a collection."""

    @property
    @abstractmethod
    def key(self) -> str:
        """Storage key of the referenced document."""
        pass

    @abstractmethod
    def get(self) -> RawDocument:
        """
        Read the document.

        Returns:
            RawDocument with exists=False when the document is absent
        """
        pass

    @abstractmethod
    def set(self, data: Dict[str, Any], merge: bool = False) -> WriteResult:
        """
        Write a field map.

        Args:
            data: Field map to write
            merge: Merge into the existing document instead of overwriting it

        Returns:
            WriteResult of the write
        """
        pass

    @abstractmethod
    def update(self, mutations: Dict["FieldPath", Any]) -> WriteResult:
        """
        Apply a set of field mutations as one atomic write.

        Args:
            mutations: Field path -> literal value or mutation marker

        Returns:
            WriteResult of the write

        Raises:
            NotFoundError: If the document does not exist (where the store
                does not report this itself)
        """
        pass

    @abstractmethod
    def delete(self) -> WriteResult:
        """Delete the document. Deleting a missing document is not an error."""
        pass


class CollectionHandle(ABC):
    """Reference to a named collection."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Collection path."""
        pass

    @abstractmethod
    def document(self, key: Optional[str] = None) -> DocumentHandle:
        """
        Get a document handle.

        Args:
            key: Storage key; a new unique key is generated when omitted

        Returns:
            DocumentHandle for the key
        """
        pass

    @abstractmethod
    def run_query(self, descriptor: "QueryDescriptor") -> List[RawDocument]:
        """
        Execute a query descriptor in one round trip.

        Store failures propagate unchanged.

        Returns:
            Matching documents in query order
        """
        pass


class DocumentStore(ABC):
    """Backing store: entry point to named collections."""

    @abstractmethod
    def collection(self, path: str) -> CollectionHandle:
        """Get a handle to the collection at path."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the store's client resources."""
        pass
