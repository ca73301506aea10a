"""
Field Paths and Typed Field Selectors

A FieldPath is an ordered sequence of wire field-name segments locating a
(possibly nested) field. Typed selectors build field paths from a record's
field-descriptor table instead of from strings:

    fields(User).address.street      -> FieldPath("address", "street")
    fields(User).display_name        -> FieldPath("displayName")
    fields(User).id                  -> FieldPath.document_id()

Each attribute step emits the field's wire name, so paths always match the
stored representation. Anything that is not a plain chain of declared
fields (unknown names, calls, subscripts) is rejected.
"""

from typing import Any, Iterator, Optional, Tuple

from ..common.error_handling import InvalidArgumentError
from .schema import FieldDescriptor, RecordSchema, schema_for

# Reserved segment addressing the storage key in filters and orderings
DOCUMENT_ID_SEGMENT = "__name__"


class FieldPath:
    """Immutable, hashable sequence of field-name segments."""

    __slots__ = ("_segments",)

    def __init__(self, *segments: str):
        if not segments:
            raise InvalidArgumentError("path", "a field path needs at least one segment")
        for segment in segments:
            if not isinstance(segment, str) or not segment:
                raise InvalidArgumentError(
                    "path", f"field path segments must be non-empty strings, got {segment!r}"
                )
        self._segments: Tuple[str, ...] = tuple(segments)

    @classmethod
    def from_dotted(cls, path: str) -> "FieldPath":
        """Build a path by splitting a dot-separated string ("address.street")."""
        if not isinstance(path, str) or not path:
            raise InvalidArgumentError("path", "dotted field path must be a non-empty string")
        return cls(*path.split("."))

    @classmethod
    def document_id(cls) -> "FieldPath":
        """Path addressing the document's storage key."""
        return cls(DOCUMENT_ID_SEGMENT)

    @property
    def segments(self) -> Tuple[str, ...]:
        return self._segments

    @property
    def is_document_id(self) -> bool:
        return self._segments == (DOCUMENT_ID_SEGMENT,)

    def child(self, segment: str) -> "FieldPath":
        return FieldPath(*self._segments, segment)

    def to_dotted(self) -> str:
        return ".".join(self._segments)

    def __len__(self) -> int:
        return len(self._segments)

    def __iter__(self) -> Iterator[str]:
        return iter(self._segments)

    def __getitem__(self, index):
        return self._segments[index]

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FieldPath):
            return self._segments == other._segments
        return NotImplemented

    def __hash__(self) -> int:
        return hash(("FieldPath", self._segments))

    def __repr__(self) -> str:
        return f"FieldPath({', '.join(repr(s) for s in self._segments)})"

    def __str__(self) -> str:
        return self.to_dotted()


class FieldSelector:
    """
    Fluent path builder over a record's declared fields.

    Obtain one with fields(RecordType); every attribute access returns a new
    selector one level deeper. Internal state uses underscore-prefixed names
    so it never shadows record field names.
    """

    __slots__ = ("_schema", "_path", "_descriptor")

    def __init__(
        self,
        schema: Optional[RecordSchema],
        path: Optional[FieldPath] = None,
        descriptor: Optional[FieldDescriptor] = None,
    ):
        object.__setattr__(self, "_schema", schema)
        object.__setattr__(self, "_path", path)
        object.__setattr__(self, "_descriptor", descriptor)

    def __getattr__(self, name: str) -> "FieldSelector":
        if name.startswith("__"):
            raise AttributeError(name)

        where = self._path.to_dotted() if self._path is not None else "<root>"
        if self._descriptor is not None and self._descriptor.is_identity:
            raise InvalidArgumentError(
                "selector", f"cannot select '{name}' below the document id field"
            )
        if self._schema is None:
            raise InvalidArgumentError(
                "selector", f"cannot select '{name}' below non-record field '{where}'"
            )

        descriptor = self._schema.field(name)
        if descriptor is None:
            raise InvalidArgumentError(
                "selector",
                f"{self._schema.name} has no stored field '{name}' (at {where})",
            )

        if descriptor.is_identity:
            if self._path is not None:
                raise InvalidArgumentError(
                    "selector", f"document id field '{name}' is only selectable at the top level"
                )
            return FieldSelector(None, FieldPath.document_id(), descriptor)

        path = FieldPath(descriptor.wire_name) if self._path is None else self._path.child(descriptor.wire_name)
        nested = descriptor.record_type
        return FieldSelector(schema_for(nested) if nested else None, path, descriptor)

    def __setattr__(self, name: str, value: Any) -> None:
        raise InvalidArgumentError("selector", "field selectors are read-only")

    def __getitem__(self, key: Any) -> "FieldSelector":
        raise InvalidArgumentError(
            "selector", f"computed index [{key!r}] is not a static field access"
        )

    def __call__(self, *args: Any, **kwargs: Any) -> "FieldSelector":
        raise InvalidArgumentError("selector", "method calls are not field accesses")

    def __repr__(self) -> str:
        where = self._path.to_dotted() if self._path is not None else "<root>"
        owner = self._schema.name if self._schema is not None else "-"
        return f"FieldSelector({where}, schema={owner})"


def fields(record_type: type) -> FieldSelector:
    """Root selector for a record type."""
    return FieldSelector(schema_for(record_type))


def selector_path(selector: FieldSelector) -> FieldPath:
    """Field path denoted by a selector."""
    path = object.__getattribute__(selector, "_path")
    if path is None:
        raise InvalidArgumentError("selector", "root selector does not denote a field; select a field first")
    return path


def resolve_path(value: Any, argument: str = "path") -> FieldPath:
    """
    Resolve any accepted path form into a FieldPath.

    Accepts a FieldPath, a typed selector, a dot-separated string, or a
    tuple/list of segments.

    Raises:
        InvalidArgumentError: For None or any other form
    """
    if isinstance(value, FieldPath):
        return value
    if isinstance(value, FieldSelector):
        return selector_path(value)
    if isinstance(value, str):
        if not value:
            raise InvalidArgumentError(argument, "field path must not be empty")
        return FieldPath.from_dotted(value)
    if isinstance(value, (tuple, list)):
        return FieldPath(*value)
    if value is None:
        raise InvalidArgumentError(argument, "field path must not be None")
    raise InvalidArgumentError(
        argument, f"expected a field path, selector or string, got {type(value).__name__}"
    )
