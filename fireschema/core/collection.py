"""
Base Collection Reference

Shared foundation for generated per-collection accessors. A generated
accessor only names its record type and collection path:

    class UsersCollection(BaseCollectionRef[User]):
        record_type = User

    users = UsersCollection(get_store(), "users")
    key = users.add(User(display_name="Ann"))
    ann = users.get_or_raise(key)
    users.update(key, lambda u: u.increment("loginCount", 1))
    adults = users.where_greater_than_or_equal_to(fields(User).age, 18).fetch()
"""

import logging
from typing import Any, Callable, Dict, Generic, Optional, Type, TypeVar, Union

from ..common.error_handling import InvalidArgumentError, NotFoundError
from ..stores.base import CollectionHandle, DocumentHandle, DocumentStore, WriteResult
from .converter import RecordConverter, converter_for
from .query import Direction, QueryBuilder
from .schema import is_record_type
from .update import UpdateBuilder

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseCollectionRef(Generic[T]):
    """
    Typed CRUD and query entry points over one collection.

    Args:
        store: Backing store
        path: Collection path
        record_type: Record type (optional when the subclass sets record_type)
    """

    record_type: Optional[Type[T]] = None

    def __init__(self, store: DocumentStore, path: str, record_type: Optional[Type[T]] = None):
        if store is None:
            raise InvalidArgumentError("store", "store must not be None")
        if not path:
            raise InvalidArgumentError("path", "collection path must not be empty")
        if record_type is not None:
            self.record_type = record_type
        if self.record_type is None:
            raise InvalidArgumentError(
                "record_type", f"{type(self).__name__} does not declare a record type"
            )

        self._store = store
        self._path = path
        self._handle: CollectionHandle = store.collection(path)
        self._converter: RecordConverter[T] = converter_for(self.record_type)

    @property
    def path(self) -> str:
        return self._path

    @property
    def handle(self) -> CollectionHandle:
        return self._handle

    @property
    def converter(self) -> RecordConverter[T]:
        return self._converter

    # === Documents ===

    def doc(self, id: str) -> DocumentHandle:
        """Document handle for a key."""
        if not id or not isinstance(id, str):
            raise InvalidArgumentError("id", "document id must be a non-empty string")
        return self._handle.document(id)

    def get(self, id: str) -> Optional[T]:
        """Read one document; None when it does not exist."""
        document = self.doc(id).get()
        return self._converter.from_document(document)

    def get_or_raise(self, id: str) -> T:
        """
        Read one document that must exist.

        Raises:
            NotFoundError: If the document does not exist
        """
        result = self.get(id)
        if result is None:
            raise NotFoundError(self._path, id)
        return result

    def add(self, record: T) -> str:
        """
        Store a record under a newly generated key.

        Any value in the record's identity field is ignored on write; the
        field is populated with the generated key afterwards.

        Returns:
            The generated key
        """
        data = self._converter.to_field_map(record)
        document = self._handle.document()
        document.set(data)

        identity = self._converter.schema.identity
        if identity is not None:
            setattr(record, identity.attr_name, document.key)
        logger.info(f"Added document '{document.key}' to '{self._path}'")
        return document.key

    def set(self, id: str, record: T) -> WriteResult:
        """Overwrite a document with the record's stored fields."""
        data = self._converter.to_field_map(record)
        result = self.doc(id).set(data)
        logger.debug(f"Set document '{id}' in '{self._path}'")
        return result

    def set_merge(self, id: str, data: Union[T, Dict[str, Any]]) -> WriteResult:
        """Merge a record or a partial field map into a document, creating it if needed."""
        if data is None:
            raise InvalidArgumentError("data", "data must not be None")
        if is_record_type(type(data)):
            field_map = self._converter.to_field_map(data)
        elif isinstance(data, dict):
            field_map = dict(data)
        else:
            raise InvalidArgumentError(
                "data", f"expected {self._converter.schema.name} or a dict, got {type(data).__name__}"
            )
        identity = self._converter.schema.identity
        if identity is not None:
            field_map.pop(identity.wire_name, None)
        return self.doc(id).set(field_map, merge=True)

    def update(self, id: str, configure: Callable[[UpdateBuilder], Any]) -> WriteResult:
        """
        Apply a partial update built by a callback.

        Args:
            id: Document key
            configure: Receives an UpdateBuilder and registers mutations on it

        Returns:
            WriteResult of the commit
        """
        if configure is None:
            raise InvalidArgumentError("configure", "configure callback must not be None")
        builder = UpdateBuilder(self.doc(id), collection=self._path)
        configure(builder)
        return builder.commit()

    def delete(self, id: str) -> WriteResult:
        """Delete a document. Deleting a missing document is not an error."""
        result = self.doc(id).delete()
        logger.debug(f"Deleted document '{id}' from '{self._path}'")
        return result

    # === Queries ===

    def query(self) -> QueryBuilder[T]:
        """Unfiltered query over the whole collection."""
        return QueryBuilder(self._handle, self.record_type)

    def where(self, path: Any, operator: Any, value: Any) -> QueryBuilder[T]:
        return self.query().where(path, operator, value)

    def where_equal_to(self, path: Any, value: Any) -> QueryBuilder[T]:
        return self.query().where_equal_to(path, value)

    def where_not_equal_to(self, path: Any, value: Any) -> QueryBuilder[T]:
        return self.query().where_not_equal_to(path, value)

    def where_less_than(self, path: Any, value: Any) -> QueryBuilder[T]:
        return self.query().where_less_than(path, value)

    def where_less_than_or_equal_to(self, path: Any, value: Any) -> QueryBuilder[T]:
        return self.query().where_less_than_or_equal_to(path, value)

    def where_greater_than(self, path: Any, value: Any) -> QueryBuilder[T]:
        return self.query().where_greater_than(path, value)

    def where_greater_than_or_equal_to(self, path: Any, value: Any) -> QueryBuilder[T]:
        return self.query().where_greater_than_or_equal_to(path, value)

    def where_array_contains(self, path: Any, value: Any) -> QueryBuilder[T]:
        return self.query().where_array_contains(path, value)

    def where_in(self, path: Any, values: Any) -> QueryBuilder[T]:
        return self.query().where_in(path, values)

    def where_not_in(self, path: Any, values: Any) -> QueryBuilder[T]:
        return self.query().where_not_in(path, values)

    def where_array_contains_any(self, path: Any, values: Any) -> QueryBuilder[T]:
        return self.query().where_array_contains_any(path, values)

    def order_by(self, path: Any, direction: Any = Direction.ASCENDING) -> QueryBuilder[T]:
        return self.query().order_by(path, direction)

    def order_by_descending(self, path: Any) -> QueryBuilder[T]:
        return self.query().order_by_descending(path)

    def limit(self, n: int) -> QueryBuilder[T]:
        return self.query().limit(n)

    def limit_to_last(self, n: int) -> QueryBuilder[T]:
        return self.query().limit_to_last(n)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._path!r})"
