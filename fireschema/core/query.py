"""
Query Builder

Immutable, chainable accumulation of filters, orderings, a result limit and
pagination cursors over one collection. Every clause method returns a new
builder wrapping a new QueryDescriptor, so a partially built query can be
reused as the base of several divergent chains:

    active = users.query().where_equal_to(fields(User).active, True)
    newest = active.order_by_descending("createdAt").limit(10)
    oldest = active.order_by("createdAt").limit(10)

Terminal methods (fetch_raw, fetch, first, stream) run the descriptor
against the store in exactly one round trip. Client-side validation happens
before any I/O; store failures propagate unchanged.
"""

import copy
import dataclasses
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Iterator, List, Optional, Tuple, Type, TypeVar

from ..common.error_handling import (
    InvalidArgumentError,
    PreconditionFailedError,
    log_on_exception,
)
from ..common.logger import get_logger
from ..stores.base import CollectionHandle, RawDocument
from .converter import converter_for
from .field_path import FieldPath, resolve_path
from .schema import is_record_type, schema_for

T = TypeVar("T")

# Protocol limit on the value set of in / not-in / array_contains_any
MAX_SET_OPERATOR_VALUES = 30


class Operator(str, Enum):
    """Filter operators, valued with the Firestore wire operator strings."""
    EQUAL = "=="
    NOT_EQUAL = "!="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    ARRAY_CONTAINS = "array_contains"
    IN = "in"
    NOT_IN = "not-in"
    ARRAY_CONTAINS_ANY = "array_contains_any"

    @property
    def takes_value_set(self) -> bool:
        return self in (Operator.IN, Operator.NOT_IN, Operator.ARRAY_CONTAINS_ANY)


class Direction(str, Enum):
    """Sort direction."""
    ASCENDING = "ASCENDING"
    DESCENDING = "DESCENDING"


@dataclass(frozen=True)
class FilterClause:
    path: FieldPath
    operator: Operator
    value: Any

    def __repr__(self) -> str:
        return f"{self.path} {self.operator.value} {self.value!r}"


@dataclass(frozen=True)
class OrderClause:
    path: FieldPath
    direction: Direction = Direction.ASCENDING

    def __repr__(self) -> str:
        return f"{self.path} {self.direction.value}"


@dataclass(frozen=True)
class LimitClause:
    count: int
    from_end: bool = False


@dataclass(frozen=True)
class Cursor:
    """
    Pagination cursor.

    Exactly one of anchor (a prior result) or values (aligned to the
    orderings) is set. inclusive distinguishes start_at/end_at from
    start_after/end_before.
    """
    anchor: Optional[RawDocument] = None
    values: Optional[Tuple[Any, ...]] = None
    inclusive: bool = True

    def __repr__(self) -> str:
        target = f"doc:{self.anchor.key}" if self.anchor is not None else repr(self.values)
        return f"Cursor({target}, inclusive={self.inclusive})"


@dataclass(frozen=True)
class QueryDescriptor:
    """
    Immutable description of a query.

    Attributes:
        collection: Collection the query runs against
        filters: Filter clauses, combined with AND
        orders: Order clauses in priority order
        limit: Result-count cap from the start or from the end
        start: Start cursor (start_at / start_after)
        end: End cursor (end_at / end_before)
    """
    collection: CollectionHandle
    filters: Tuple[FilterClause, ...] = ()
    orders: Tuple[OrderClause, ...] = ()
    limit: Optional[LimitClause] = None
    start: Optional[Cursor] = None
    end: Optional[Cursor] = None

    def validate(self) -> None:
        """
        Check clause combinations that only make sense together.

        Raises:
            InvalidArgumentError: limit_to_last without ordering, or a value
                cursor whose arity differs from the number of orderings
        """
        if self.limit is not None and self.limit.from_end and not self.orders:
            raise InvalidArgumentError(
                "limit_to_last", "limit_to_last requires at least one order_by clause"
            )
        for name, cursor in (("start", self.start), ("end", self.end)):
            if cursor is None or cursor.values is None:
                continue
            if len(cursor.values) != len(self.orders):
                raise InvalidArgumentError(
                    f"{name}_cursor",
                    f"cursor has {len(cursor.values)} value(s) but the query has "
                    f"{len(self.orders)} order_by clause(s)",
                )

    def __repr__(self) -> str:
        parts = [f"collection={self.collection.name!r}"]
        if self.filters:
            parts.append(f"where={list(self.filters)}")
        if self.orders:
            parts.append(f"order_by={list(self.orders)}")
        if self.limit is not None:
            kind = "limit_to_last" if self.limit.from_end else "limit"
            parts.append(f"{kind}={self.limit.count}")
        if self.start is not None:
            parts.append(f"start={self.start!r}")
        if self.end is not None:
            parts.append(f"end={self.end!r}")
        return f"QueryDescriptor({', '.join(parts)})"


def _check_value_set(operator: Operator, value: Any) -> Tuple[Any, ...]:
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
        raise InvalidArgumentError(
            "value", f"'{operator.value}' needs a list of values, got {type(value).__name__}"
        )
    values = tuple(value)
    if not values:
        raise InvalidArgumentError("value", f"'{operator.value}' needs at least one value")
    if len(values) > MAX_SET_OPERATOR_VALUES:
        raise InvalidArgumentError(
            "value",
            f"'{operator.value}' accepts at most {MAX_SET_OPERATOR_VALUES} values, got {len(values)}",
        )
    return values


def _check_count(argument: str, n: Any) -> int:
    if isinstance(n, bool) or not isinstance(n, int) or n <= 0:
        raise InvalidArgumentError(argument, f"expected a positive integer, got {n!r}")
    return n


class QueryBuilder(Generic[T]):
    """
    Chainable query over a collection.

    Args:
        collection: Collection handle the query runs against
        record_type: Record type results are converted into (required by
            fetch, first and stream; fetch_raw works without one)
    """

    def __init__(
        self,
        collection: CollectionHandle,
        record_type: Optional[Type[T]] = None,
        descriptor: Optional[QueryDescriptor] = None,
    ):
        if collection is None:
            raise InvalidArgumentError("collection", "collection must not be None")
        if record_type is not None:
            schema_for(record_type)
        self._collection = collection
        self._record_type = record_type
        self._descriptor = descriptor or QueryDescriptor(collection=collection)
        self._log = get_logger(__name__, collection=collection.name, operation="query")

    @property
    def descriptor(self) -> QueryDescriptor:
        return self._descriptor

    @property
    def record_type(self) -> Optional[Type[T]]:
        return self._record_type

    def _derive(self, **changes: Any) -> "QueryBuilder[T]":
        derived = copy.copy(self)
        derived._descriptor = dataclasses.replace(self._descriptor, **changes)
        return derived

    # === Filters ===

    def where(self, path: Any, operator: Any, value: Any) -> "QueryBuilder[T]":
        """
        Add a filter clause.

        Args:
            path: Field path, typed selector, dotted string or segments
            operator: Operator member or its wire string ("==", "in", ...)
            value: Comparison value, or a list of 1-30 values for
                in / not-in / array_contains_any

        Returns:
            New builder with the filter appended

        Raises:
            InvalidArgumentError: Malformed path, unknown operator or a value
                set outside the allowed cardinality
        """
        field_path = resolve_path(path)
        try:
            op = Operator(operator)
        except ValueError:
            raise InvalidArgumentError("operator", f"unknown filter operator {operator!r}")

        if op.takes_value_set:
            value = _check_value_set(op, value)

        clause = FilterClause(field_path, op, value)
        self._log.debug(f"where {clause!r}")
        return self._derive(filters=self._descriptor.filters + (clause,))

    def where_equal_to(self, path: Any, value: Any) -> "QueryBuilder[T]":
        return self.where(path, Operator.EQUAL, value)

    def where_not_equal_to(self, path: Any, value: Any) -> "QueryBuilder[T]":
        return self.where(path, Operator.NOT_EQUAL, value)

    def where_less_than(self, path: Any, value: Any) -> "QueryBuilder[T]":
        return self.where(path, Operator.LESS_THAN, value)

    def where_less_than_or_equal_to(self, path: Any, value: Any) -> "QueryBuilder[T]":
        return self.where(path, Operator.LESS_THAN_OR_EQUAL, value)

    def where_greater_than(self, path: Any, value: Any) -> "QueryBuilder[T]":
        return self.where(path, Operator.GREATER_THAN, value)

    def where_greater_than_or_equal_to(self, path: Any, value: Any) -> "QueryBuilder[T]":
        return self.where(path, Operator.GREATER_THAN_OR_EQUAL, value)

    def where_array_contains(self, path: Any, value: Any) -> "QueryBuilder[T]":
        return self.where(path, Operator.ARRAY_CONTAINS, value)

    def where_in(self, path: Any, values: Any) -> "QueryBuilder[T]":
        return self.where(path, Operator.IN, values)

    def where_not_in(self, path: Any, values: Any) -> "QueryBuilder[T]":
        return self.where(path, Operator.NOT_IN, values)

    def where_array_contains_any(self, path: Any, values: Any) -> "QueryBuilder[T]":
        return self.where(path, Operator.ARRAY_CONTAINS_ANY, values)

    # === Ordering and limits ===

    def order_by(self, path: Any, direction: Any = Direction.ASCENDING) -> "QueryBuilder[T]":
        """Append an ordering. Repeated paths are kept as given."""
        field_path = resolve_path(path)
        try:
            resolved = Direction(direction.upper() if isinstance(direction, str) else direction)
        except ValueError:
            raise InvalidArgumentError("direction", f"unknown sort direction {direction!r}")

        clause = OrderClause(field_path, resolved)
        self._log.debug(f"order_by {clause!r}")
        return self._derive(orders=self._descriptor.orders + (clause,))

    def order_by_descending(self, path: Any) -> "QueryBuilder[T]":
        return self.order_by(path, Direction.DESCENDING)

    def limit(self, n: int) -> "QueryBuilder[T]":
        """Return at most n results from the start. Replaces any earlier limit."""
        return self._derive(limit=LimitClause(_check_count("limit", n), from_end=False))

    def limit_to_last(self, n: int) -> "QueryBuilder[T]":
        """
        Return the last n results (still in query order).

        Replaces any earlier limit. Needs at least one order_by clause by
        the time the query runs.
        """
        return self._derive(limit=LimitClause(_check_count("limit_to_last", n), from_end=True))

    # === Cursors ===

    def start_at(self, *anchor_or_values: Any) -> "QueryBuilder[T]":
        """Start at a prior result or at the given order-by values (inclusive)."""
        return self._derive(start=self._cursor("start_at", anchor_or_values, inclusive=True))

    def start_after(self, *anchor_or_values: Any) -> "QueryBuilder[T]":
        """Start after a prior result or the given order-by values."""
        return self._derive(start=self._cursor("start_after", anchor_or_values, inclusive=False))

    def end_at(self, *anchor_or_values: Any) -> "QueryBuilder[T]":
        """End at a prior result or at the given order-by values (inclusive)."""
        return self._derive(end=self._cursor("end_at", anchor_or_values, inclusive=True))

    def end_before(self, *anchor_or_values: Any) -> "QueryBuilder[T]":
        """End before a prior result or the given order-by values."""
        return self._derive(end=self._cursor("end_before", anchor_or_values, inclusive=False))

    def _cursor(self, argument: str, args: Tuple[Any, ...], inclusive: bool) -> Cursor:
        if not args:
            raise InvalidArgumentError(argument, "expected a document or at least one value")

        if len(args) == 1:
            candidate = args[0]
            if isinstance(candidate, RawDocument):
                return Cursor(anchor=candidate, inclusive=inclusive)
            if is_record_type(type(candidate)):
                return Cursor(anchor=self._anchor_from_record(argument, candidate), inclusive=inclusive)

        return Cursor(values=tuple(args), inclusive=inclusive)

    def _anchor_from_record(self, argument: str, record: Any) -> RawDocument:
        schema = schema_for(type(record))
        key = getattr(record, schema.identity.attr_name, None) if schema.identity else None
        if not key:
            raise InvalidArgumentError(
                argument, f"{schema.name} anchor needs a populated document id"
            )
        data = converter_for(type(record)).to_field_map(record)
        return RawDocument(key=key, data=data, exists=True)

    # === Terminal operations ===

    def fetch_raw(self) -> List[RawDocument]:
        """
        Execute the query.

        Returns:
            Raw documents in query order

        Raises:
            InvalidArgumentError: Invalid clause combination (no I/O made)
        """
        self._descriptor.validate()
        self._log.debug(f"Executing {self._descriptor!r}")

        with log_on_exception(self._log, "fetch", level=logging.ERROR):
            documents = self._collection.run_query(self._descriptor)

        self._log.debug(f"Fetched {len(documents)} document(s)")
        return documents

    def fetch(self) -> List[T]:
        """
        Execute the query and convert each result into a record.

        Results reported as non-existent are skipped.
        """
        converter = self._converter()
        return list(self._convert(converter, self.fetch_raw()))

    def first(self) -> Optional[T]:
        """
        Execute the query and return its first result; None when nothing matches.

        Applies limit(1), except on a limit_to_last query, where the last-n
        window is kept and its first result returned.
        """
        limit = self._descriptor.limit
        query = self if limit is not None and limit.from_end else self.limit(1)
        results = query.fetch()
        return results[0] if results else None

    def stream(self) -> Iterator[T]:
        """Execute the query and lazily convert results as they are consumed."""
        converter = self._converter()
        return self._convert(converter, self.fetch_raw())

    def _converter(self):
        if self._record_type is None:
            raise PreconditionFailedError(
                "Query has no record type; use fetch_raw() for untyped results."
            )
        return converter_for(self._record_type)

    def _convert(self, converter: Any, documents: List[RawDocument]) -> Iterator[T]:
        for document in documents:
            result = converter.from_document(document)
            if result is None:
                self._log.debug(f"Skipping non-existent result '{document.key}'")
                continue
            yield result

    def __repr__(self) -> str:
        return f"QueryBuilder({self._descriptor!r})"
