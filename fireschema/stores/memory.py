"""
In-Memory Store

Dict-backed store with document-store semantics, for tests and local
development. Values are compared with the cross-type ordering Firestore
uses (null < booleans < numbers < timestamps < strings < bytes < arrays <
maps), filters and orderings only match documents where the field exists,
and every mutation marker is applied the way the managed store applies it.

Data is deep-copied on every write and read so callers never alias stored
state.
"""

import copy
import functools
import logging
import uuid
from datetime import datetime, timezone
from numbers import Number
from typing import Any, Dict, List, Optional, Tuple

from ..common.error_handling import NotFoundError
from ..core.field_path import FieldPath
from ..core.mutations import DELETE_FIELD, SERVER_TIMESTAMP, ArrayRemove, ArrayUnion, Increment
from ..core.query import Cursor, Direction, FilterClause, Operator, OrderClause, QueryDescriptor
from .base import CollectionHandle, DocumentHandle, DocumentStore, RawDocument, WriteResult

logger = logging.getLogger(__name__)

_MISSING = object()


# === Value ordering ===

def _type_rank(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1
    if isinstance(value, Number):
        return 2
    if isinstance(value, datetime):
        return 3
    if isinstance(value, str):
        return 4
    if isinstance(value, (bytes, bytearray)):
        return 5
    if isinstance(value, (list, tuple)):
        return 8
    if isinstance(value, dict):
        return 9
    return 10


def sort_key(value: Any) -> Tuple[Any, ...]:
    """Total-order key for a stored value."""
    rank = _type_rank(value)
    if rank == 0:
        return (0,)
    if rank == 8:
        return (8, tuple(sort_key(item) for item in value))
    if rank == 9:
        return (9, tuple((k, sort_key(v)) for k, v in sorted(value.items())))
    if rank == 10:
        return (10, repr(value))
    if rank == 3 and value.tzinfo is None:
        # Naive timestamps are stored as UTC
        return (3, value.replace(tzinfo=timezone.utc))
    return (rank, value)


def values_equal(a: Any, b: Any) -> bool:
    """Equality under store semantics (True != 1, 1 == 1.0)."""
    return sort_key(a) == sort_key(b)


def _compare(a: Any, b: Any) -> int:
    ka, kb = sort_key(a), sort_key(b)
    return (ka > kb) - (ka < kb)


# === Nested field access ===

def deep_get(data: Dict[str, Any], path: FieldPath) -> Any:
    """Value at path, or _MISSING when any segment is absent."""
    current: Any = data
    for segment in path:
        if not isinstance(current, dict) or segment not in current:
            return _MISSING
        current = current[segment]
    return current


def deep_set(data: Dict[str, Any], path: FieldPath, value: Any) -> None:
    """Set value at path, creating (or replacing non-map) intermediate maps."""
    current = data
    for segment in path[:-1]:
        child = current.get(segment)
        if not isinstance(child, dict):
            child = {}
            current[segment] = child
        current = child
    current[path[-1]] = value


def deep_unset(data: Dict[str, Any], path: FieldPath) -> None:
    current: Any = data
    for segment in path[:-1]:
        if not isinstance(current, dict) or segment not in current:
            return
        current = current[segment]
    if isinstance(current, dict):
        current.pop(path[-1], None)


def _deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)


# === Query evaluation ===

def _matches(key: str, data: Dict[str, Any], clause: FilterClause) -> bool:
    value = key if clause.path.is_document_id else deep_get(data, clause.path)
    if value is _MISSING:
        return False

    op = clause.operator
    target = clause.value

    if op == Operator.EQUAL:
        return values_equal(value, target)
    if op == Operator.NOT_EQUAL:
        return value is not None and not values_equal(value, target)
    if op in (
        Operator.LESS_THAN,
        Operator.LESS_THAN_OR_EQUAL,
        Operator.GREATER_THAN,
        Operator.GREATER_THAN_OR_EQUAL,
    ):
        # Range comparisons never cross value types
        if _type_rank(value) != _type_rank(target):
            return False
        result = _compare(value, target)
        return {
            Operator.LESS_THAN: result < 0,
            Operator.LESS_THAN_OR_EQUAL: result <= 0,
            Operator.GREATER_THAN: result > 0,
            Operator.GREATER_THAN_OR_EQUAL: result >= 0,
        }[op]
    if op == Operator.ARRAY_CONTAINS:
        return isinstance(value, list) and any(values_equal(item, target) for item in value)
    if op == Operator.IN:
        return any(values_equal(value, candidate) for candidate in target)
    if op == Operator.NOT_IN:
        return value is not None and not any(values_equal(value, candidate) for candidate in target)
    if op == Operator.ARRAY_CONTAINS_ANY:
        return isinstance(value, list) and any(
            values_equal(item, candidate) for item in value for candidate in target
        )
    raise ValueError(f"Unsupported operator: {op}")


def _effective_orders(descriptor: QueryDescriptor) -> List[OrderClause]:
    """Explicit orderings plus the implicit key tiebreak."""
    orders = list(descriptor.orders)
    if not any(order.path.is_document_id for order in orders):
        direction = orders[-1].direction if orders else Direction.ASCENDING
        orders.append(OrderClause(FieldPath.document_id(), direction))
    return orders


def _position(key: str, data: Dict[str, Any], orders: List[OrderClause]) -> List[Any]:
    return [key if order.path.is_document_id else deep_get(data, order.path) for order in orders]


def _compare_positions(a: List[Any], b: List[Any], orders: List[OrderClause]) -> int:
    for left, right, order in zip(a, b, orders):
        result = _compare(left, right)
        if result:
            return -result if order.direction == Direction.DESCENDING else result
    return 0


def _within_cursor(position: List[Any], cursor: Cursor, orders: List[OrderClause], is_start: bool) -> bool:
    if cursor.anchor is not None:
        bound = _position(cursor.anchor.key, cursor.anchor.data, orders)
    else:
        bound = list(cursor.values)
    result = _compare_positions(position[: len(bound)], bound, orders[: len(bound)])
    if result == 0:
        return cursor.inclusive
    return result > 0 if is_start else result < 0


# === Handles ===

class MemoryDocument(DocumentHandle):
    """Document handle over one key of a collection dict."""

    def __init__(self, documents: Dict[str, Dict[str, Any]], key: str, collection_name: str):
        self._documents = documents
        self._key = key
        self._collection_name = collection_name

    @property
    def key(self) -> str:
        return self._key

    def get(self) -> RawDocument:
        data = self._documents.get(self._key)
        if data is None:
            return RawDocument(key=self._key, data={}, exists=False)
        return RawDocument(key=self._key, data=copy.deepcopy(data), exists=True)

    def set(self, data: Dict[str, Any], merge: bool = False) -> WriteResult:
        existing = self._documents.get(self._key)
        created = existing is None
        if merge and existing is not None:
            _deep_merge(existing, data)
        else:
            self._documents[self._key] = copy.deepcopy(dict(data))
        return WriteResult(
            update_time=datetime.now(timezone.utc),
            matched_count=0 if created else 1,
            modified_count=0 if created else 1,
            upserted_id=self._key if created else None,
        )

    def update(self, mutations: Dict[FieldPath, Any]) -> WriteResult:
        """
        Apply all mutations to a copy and swap it in, so a failing mutation
        leaves the stored document untouched.

        Raises:
            NotFoundError: If the document does not exist
        """
        existing = self._documents.get(self._key)
        if existing is None:
            raise NotFoundError(self._collection_name, self._key)

        updated = copy.deepcopy(existing)
        now = datetime.now(timezone.utc)
        for path, value in mutations.items():
            _apply(updated, path, value, now)
        self._documents[self._key] = updated
        return WriteResult(update_time=now)

    def delete(self) -> WriteResult:
        removed = self._documents.pop(self._key, None)
        count = 0 if removed is None else 1
        return WriteResult(
            update_time=datetime.now(timezone.utc),
            matched_count=count,
            modified_count=count,
        )


def _apply(data: Dict[str, Any], path: FieldPath, value: Any, now: datetime) -> None:
    if value is DELETE_FIELD:
        deep_unset(data, path)
    elif value is SERVER_TIMESTAMP:
        deep_set(data, path, now)
    elif isinstance(value, Increment):
        current = deep_get(data, path)
        if isinstance(current, Number) and not isinstance(current, bool):
            deep_set(data, path, current + value.delta)
        else:
            deep_set(data, path, value.delta)
    elif isinstance(value, ArrayUnion):
        current = deep_get(data, path)
        items = list(current) if isinstance(current, list) else []
        for element in value.values:
            if not any(values_equal(element, item) for item in items):
                items.append(copy.deepcopy(element))
        deep_set(data, path, items)
    elif isinstance(value, ArrayRemove):
        current = deep_get(data, path)
        items = list(current) if isinstance(current, list) else []
        deep_set(
            data,
            path,
            [item for item in items if not any(values_equal(item, e) for e in value.values)],
        )
    else:
        deep_set(data, path, copy.deepcopy(value))


class MemoryCollection(CollectionHandle):
    """Collection handle over a dict of key -> field map."""

    def __init__(self, documents: Dict[str, Dict[str, Any]], path: str):
        self._documents = documents
        self._path = path

    @property
    def name(self) -> str:
        return self._path

    def document(self, key: Optional[str] = None) -> DocumentHandle:
        return MemoryDocument(self._documents, key or uuid.uuid4().hex, self._path)

    def run_query(self, descriptor: QueryDescriptor) -> List[RawDocument]:
        orders = _effective_orders(descriptor)
        order_paths = [o.path for o in descriptor.orders if not o.path.is_document_id]

        rows = []
        for key, data in self._documents.items():
            if not all(_matches(key, data, clause) for clause in descriptor.filters):
                continue
            if any(deep_get(data, path) is _MISSING for path in order_paths):
                continue
            rows.append((key, data, _position(key, data, orders)))

        rows.sort(key=functools.cmp_to_key(lambda a, b: _compare_positions(a[2], b[2], orders)))

        if descriptor.start is not None:
            rows = [r for r in rows if _within_cursor(r[2], descriptor.start, orders, is_start=True)]
        if descriptor.end is not None:
            rows = [r for r in rows if _within_cursor(r[2], descriptor.end, orders, is_start=False)]

        if descriptor.limit is not None:
            n = descriptor.limit.count
            rows = rows[-n:] if descriptor.limit.from_end else rows[:n]

        return [RawDocument(key=key, data=copy.deepcopy(data), exists=True) for key, data, _ in rows]


class MemoryStore(DocumentStore):
    """In-process store; each instance holds its own collections."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def collection(self, path: str) -> CollectionHandle:
        documents = self._collections.setdefault(path, {})
        return MemoryCollection(documents, path)

    def close(self) -> None:
        self._collections.clear()
        logger.debug("Memory store cleared")
