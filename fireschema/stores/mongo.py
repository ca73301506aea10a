"""
MongoDB Store

Store adapter over pymongo. Query descriptors are translated into a
find() filter, a sort specification and a limit; mutation markers into
MongoDB update operators. The storage key lives in _id as a string.

Translation keeps the document-store semantics callers rely on:
- Filters and orderings only match documents where the field exists
- Orderings are tie-broken on _id so pagination is stable
- Cursors become lexicographic range filters over the ordered fields
- limit_to_last runs the reversed sort and reverses the page
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from ..common.error_handling import NotFoundError
from ..core.field_path import FieldPath
from ..core.mutations import DELETE_FIELD, SERVER_TIMESTAMP, ArrayRemove, ArrayUnion, Increment
from ..core.query import Cursor, Direction, FilterClause, Operator, QueryDescriptor
from .base import CollectionHandle, DocumentHandle, DocumentStore, RawDocument, WriteResult

logger = logging.getLogger(__name__)

KEY_FIELD = "_id"

_RANGE_OPERATORS = {
    Operator.LESS_THAN: "$lt",
    Operator.LESS_THAN_OR_EQUAL: "$lte",
    Operator.GREATER_THAN: "$gt",
    Operator.GREATER_THAN_OR_EQUAL: "$gte",
}


def _field(path: FieldPath) -> str:
    if path.is_document_id:
        return KEY_FIELD
    return path.to_dotted()


def _to_raw(document: Dict[str, Any]) -> RawDocument:
    data = dict(document)
    key = data.pop(KEY_FIELD)
    return RawDocument(key=str(key), data=data, exists=True)


def _translate_filter(clause: FilterClause) -> Dict[str, Any]:
    """Translate one filter clause into a MongoDB condition."""
    field = _field(clause.path)
    op = clause.operator
    value = list(clause.value) if op.takes_value_set else clause.value

    if op == Operator.EQUAL:
        condition: Dict[str, Any] = {"$eq": value}
    elif op == Operator.NOT_EQUAL:
        # Null fields never satisfy != or not-in
        condition = {"$nin": [value, None]}
    elif op in _RANGE_OPERATORS:
        condition = {_RANGE_OPERATORS[op]: value}
    elif op == Operator.ARRAY_CONTAINS:
        condition = {"$elemMatch": {"$eq": value}}
    elif op == Operator.IN:
        condition = {"$in": value}
    elif op == Operator.NOT_IN:
        condition = {"$nin": value + [None]}
    elif op == Operator.ARRAY_CONTAINS_ANY:
        condition = {"$elemMatch": {"$in": value}}
    else:
        raise ValueError(f"Unsupported operator: {op}")

    if field != KEY_FIELD and "$elemMatch" not in condition:
        condition["$exists"] = True
    return {field: condition}


def _translate_update(mutations: Dict[FieldPath, Any]) -> Dict[str, Any]:
    """Translate a mutation set into a MongoDB update document."""
    update: Dict[str, Any] = {}
    for path, value in mutations.items():
        field = _field(path)
        if value is DELETE_FIELD:
            update.setdefault("$unset", {})[field] = ""
        elif value is SERVER_TIMESTAMP:
            update.setdefault("$currentDate", {})[field] = True
        elif isinstance(value, Increment):
            update.setdefault("$inc", {})[field] = value.delta
        elif isinstance(value, ArrayUnion):
            update.setdefault("$addToSet", {})[field] = {"$each": list(value.values)}
        elif isinstance(value, ArrayRemove):
            update.setdefault("$pull", {})[field] = {"$in": list(value.values)}
        else:
            update.setdefault("$set", {})[field] = value
    return update


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested maps into dotted paths so a $set merges instead of replacing."""
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        path = f"{prefix}{key}"
        if isinstance(value, dict) and value:
            flat.update(_flatten(value, f"{path}."))
        else:
            flat[path] = value
    return flat


def _sort_spec(descriptor: QueryDescriptor) -> List[Tuple[str, int]]:
    sort = [
        (_field(order.path), DESCENDING if order.direction == Direction.DESCENDING else ASCENDING)
        for order in descriptor.orders
    ]
    if not any(field == KEY_FIELD for field, _ in sort):
        tiebreak = sort[-1][1] if sort else ASCENDING
        sort.append((KEY_FIELD, tiebreak))
    return sort


def _cursor_filter(
    sort: List[Tuple[str, int]],
    cursor: Cursor,
    is_start: bool,
) -> Dict[str, Any]:
    """
    Build the range filter of a start or end cursor.

    For ordered fields F1..Fk with cursor values v1..vk, a start cursor
    keeps documents lexicographically after the position:
        F1 > v1  OR  (F1 == v1 AND F2 > v2)  OR ...
    Inclusive cursors make the last comparison non-strict.
    """
    if cursor.anchor is not None:
        values = []
        for field, _ in sort:
            if field == KEY_FIELD:
                values.append(cursor.anchor.key)
            else:
                value: Any = cursor.anchor.data
                for segment in field.split("."):
                    value = value.get(segment) if isinstance(value, dict) else None
                values.append(value)
        fields = sort
    else:
        values = list(cursor.values)
        fields = sort[: len(values)]

    branches = []
    for i, ((field, direction), value) in enumerate(zip(fields, values)):
        ascending_side = (direction == ASCENDING) == is_start
        op = "$gt" if ascending_side else "$lt"
        if cursor.inclusive and i == len(fields) - 1:
            op += "e"
        branch = {f: {"$eq": v} for (f, _), v in zip(fields[:i], values[:i])}
        branch[field] = {op: value}
        branches.append(branch)

    if len(branches) == 1:
        return branches[0]
    return {"$or": branches}


class MongoDocument(DocumentHandle):
    """Document handle over one _id in a pymongo collection."""

    def __init__(self, collection: Collection, key: str, collection_name: str):
        self._collection = collection
        self._key = key
        self._collection_name = collection_name

    @property
    def key(self) -> str:
        return self._key

    def get(self) -> RawDocument:
        document = self._collection.find_one({KEY_FIELD: self._key})
        if document is None:
            return RawDocument(key=self._key, data={}, exists=False)
        return _to_raw(document)

    def set(self, data: Dict[str, Any], merge: bool = False) -> WriteResult:
        if not merge:
            result = self._collection.replace_one({KEY_FIELD: self._key}, dict(data), upsert=True)
        else:
            flat = _flatten(data)
            if not flat:
                if self._collection.find_one({KEY_FIELD: self._key}) is None:
                    self._collection.insert_one({KEY_FIELD: self._key})
                return WriteResult(matched_count=1, modified_count=0)
            result = self._collection.update_one({KEY_FIELD: self._key}, {"$set": flat}, upsert=True)

        return WriteResult(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            upserted_id=str(result.upserted_id) if result.upserted_id else None,
        )

    def update(self, mutations: Dict[FieldPath, Any]) -> WriteResult:
        """
        Apply the mutation set with one update_one call.

        Raises:
            NotFoundError: If no document has this key
        """
        update = _translate_update(mutations)
        result = self._collection.update_one({KEY_FIELD: self._key}, update)
        if result.matched_count == 0:
            raise NotFoundError(self._collection_name, self._key)
        return WriteResult(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
        )

    def delete(self) -> WriteResult:
        result = self._collection.delete_one({KEY_FIELD: self._key})
        return WriteResult(
            matched_count=result.deleted_count,
            modified_count=result.deleted_count,
        )


class MongoCollection(CollectionHandle):
    """Collection handle over a pymongo Collection."""

    def __init__(self, collection: Collection, path: str):
        self._collection = collection
        self._path = path

    @property
    def name(self) -> str:
        return self._path

    def document(self, key: Optional[str] = None) -> DocumentHandle:
        return MongoDocument(self._collection, key or str(ObjectId()), self._path)

    def build_find(
        self, descriptor: QueryDescriptor
    ) -> Tuple[Dict[str, Any], List[Tuple[str, int]], int]:
        """
        Translate a descriptor into find() arguments.

        Returns:
            Tuple of (filter, sort, limit); limit 0 means no limit. When the
            descriptor limits from the end, sort is already reversed.
        """
        conditions = [_translate_filter(clause) for clause in descriptor.filters]

        for order in descriptor.orders:
            if not order.path.is_document_id:
                conditions.append({_field(order.path): {"$exists": True}})

        sort = _sort_spec(descriptor)
        if descriptor.start is not None:
            conditions.append(_cursor_filter(sort, descriptor.start, is_start=True))
        if descriptor.end is not None:
            conditions.append(_cursor_filter(sort, descriptor.end, is_start=False))

        if not conditions:
            filter: Dict[str, Any] = {}
        elif len(conditions) == 1:
            filter = conditions[0]
        else:
            filter = {"$and": conditions}

        limit = 0
        if descriptor.limit is not None:
            limit = descriptor.limit.count
            if descriptor.limit.from_end:
                sort = [(field, -direction) for field, direction in sort]
        return filter, sort, limit

    def run_query(self, descriptor: QueryDescriptor) -> List[RawDocument]:
        filter, sort, limit = self.build_find(descriptor)

        cursor = self._collection.find(filter, None)
        cursor = cursor.sort(sort)
        if limit > 0:
            cursor = cursor.limit(limit)
        documents = [_to_raw(document) for document in cursor]

        if descriptor.limit is not None and descriptor.limit.from_end:
            documents.reverse()
        return documents


class MongoStore(DocumentStore):
    """
    MongoDB-backed store.

    Connection Management:
    - Uses a class-level singleton MongoClient for connection pooling
    - Client is created once and reused across collections
    - PyMongo handles the connection pool internally

    Error Handling:
    - Fail-fast: all pymongo errors propagate to the caller
    """

    _client: Optional[MongoClient] = None
    _db: Optional[Database] = None

    def __init__(self, mongodb_uri: str, database: str = "fireschema"):
        """
        Initialize the store with connection parameters.

        Args:
            mongodb_uri: MongoDB connection string
            database: Database name (default: "fireschema")
        """
        self._mongodb_uri = mongodb_uri
        self._database_name = database

    def _get_db(self) -> Database:
        if MongoStore._db is None:
            MongoStore._client = MongoClient(self._mongodb_uri)
            MongoStore._db = MongoStore._client[self._database_name]
            logger.info(f"MongoDB store connected: {self._database_name}")
        return MongoStore._db

    def collection(self, path: str) -> CollectionHandle:
        return MongoCollection(self._get_db()[path], path)

    def close(self) -> None:
        MongoStore.reset_connection()

    @classmethod
    def reset_connection(cls) -> None:
        """
        Reset the shared connection.

        Used for testing or when configuration changes.
        """
        if cls._client is not None:
            cls._client.close()
            cls._client = None
            cls._db = None
            logger.info("MongoDB connection reset")
