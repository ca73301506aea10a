"""
Record Field Descriptors

Records are dataclasses. Fields that are persisted are declared with
stored(); the field holding the document's storage key is declared with
document_id(). Plain dataclass fields are kept in memory only.

Each record type gets a RecordSchema (its field-descriptor table) built once
and cached, so conversion and path resolution never re-inspect the class.

Usage:
    @record
    @dataclass
    class User:
        id: str = document_id()
        display_name: str = stored("displayName", default="")
        age: int = stored(default=0)
        session_token: str = ""   # not persisted
"""

import dataclasses
import threading
import types
import typing
from dataclasses import MISSING, dataclass
from typing import Any, Dict, Optional, Tuple, Type

from ..common.error_handling import InvalidArgumentError

# Key under which fireschema options live in dataclasses.Field.metadata
_METADATA_KEY = "fireschema"


@dataclass(frozen=True)
class FieldOptions:
    """Per-field options attached to dataclass field metadata."""
    name: Optional[str] = None
    is_identity: bool = False


def stored(
    name: Optional[str] = None,
    *,
    default: Any = MISSING,
    default_factory: Any = MISSING,
) -> Any:
    """
    Declare a persisted record field.

    Args:
        name: Wire name override (defaults to the attribute name)
        default: Default value
        default_factory: Factory for mutable defaults (lists, dicts)

    Returns:
        A dataclasses.field carrying the store metadata
    """
    if name is not None and (not isinstance(name, str) or not name):
        raise InvalidArgumentError("name", "wire name must be a non-empty string")
    return dataclasses.field(
        default=default,
        default_factory=default_factory,
        metadata={_METADATA_KEY: FieldOptions(name=name)},
    )


def document_id(*, default: Any = "") -> Any:
    """
    Declare the identity field.

    The identity field holds the document's storage key. It is never written
    into the stored field map and is always populated from the key on read.
    """
    return dataclasses.field(
        default=default,
        metadata={_METADATA_KEY: FieldOptions(is_identity=True)},
    )


@dataclass(frozen=True)
class FieldDescriptor:
    """
    One entry of a record's field-descriptor table.

    Attributes:
        attr_name: Python attribute name on the record
        wire_name: Field name used in the stored field map
        is_identity: Whether this field holds the storage key
        type_hint: Resolved type annotation (Any when unresolvable)
        init: Whether the field is accepted by the dataclass __init__
    """
    attr_name: str
    wire_name: str
    is_identity: bool
    type_hint: Any
    init: bool = True

    @property
    def record_type(self) -> Optional[type]:
        """Nested record type when the field holds a record (or Optional record)."""
        candidate = _unwrap_optional(self.type_hint)
        if is_record_type(candidate):
            return candidate
        return None

    @property
    def item_record_type(self) -> Optional[type]:
        """Element record type when the field holds a list of records."""
        candidate = _unwrap_optional(self.type_hint)
        if typing.get_origin(candidate) is list:
            args = typing.get_args(candidate)
            if args and is_record_type(args[0]):
                return args[0]
        return None


class RecordSchema:
    """Field-descriptor table for one record type."""

    def __init__(self, record_type: type, fields: Tuple[FieldDescriptor, ...]):
        self.record_type = record_type
        self.fields = fields
        self._by_attr: Dict[str, FieldDescriptor] = {f.attr_name: f for f in fields}

        identities = [f for f in fields if f.is_identity]
        if len(identities) > 1:
            names = ", ".join(f.attr_name for f in identities)
            raise InvalidArgumentError(
                "record_type",
                f"{record_type.__name__} declares more than one document_id() field: {names}",
            )
        self.identity: Optional[FieldDescriptor] = identities[0] if identities else None

        wire_names = [f.wire_name for f in self.stored_fields]
        duplicates = sorted({n for n in wire_names if wire_names.count(n) > 1})
        if duplicates:
            raise InvalidArgumentError(
                "record_type",
                f"{record_type.__name__} maps several fields to the same wire name: {', '.join(duplicates)}",
            )

    @property
    def name(self) -> str:
        return self.record_type.__name__

    @property
    def stored_fields(self) -> Tuple[FieldDescriptor, ...]:
        """Fields written to and read from the stored field map."""
        return tuple(f for f in self.fields if not f.is_identity)

    def field(self, attr_name: str) -> Optional[FieldDescriptor]:
        """Look up a declared field (stored or identity) by attribute name."""
        return self._by_attr.get(attr_name)

    def __repr__(self) -> str:
        return f"RecordSchema({self.name}, fields={[f.attr_name for f in self.fields]})"


_schemas: Dict[type, RecordSchema] = {}
_schemas_lock = threading.Lock()


def is_record_type(candidate: Any) -> bool:
    """Check whether a class can be used as a record (a dataclass type)."""
    return isinstance(candidate, type) and dataclasses.is_dataclass(candidate)


def _unwrap_optional(hint: Any) -> Any:
    """Return T for Optional[T], otherwise the hint unchanged."""
    if typing.get_origin(hint) in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint


def _build_schema(record_type: type) -> RecordSchema:
    try:
        hints = typing.get_type_hints(record_type)
    except (NameError, TypeError):
        # Unresolvable forward references: fall back to untyped descriptors
        hints = {}

    descriptors = []
    for f in dataclasses.fields(record_type):
        options = f.metadata.get(_METADATA_KEY)
        if options is None:
            continue
        descriptors.append(
            FieldDescriptor(
                attr_name=f.name,
                wire_name=f.name if options.is_identity else (options.name or f.name),
                is_identity=options.is_identity,
                type_hint=hints.get(f.name, Any),
                init=f.init,
            )
        )
    return RecordSchema(record_type, tuple(descriptors))


def schema_for(record_type: Type[Any]) -> RecordSchema:
    """
    Get the field-descriptor table for a record type.

    Built on first use and cached for the lifetime of the process.

    Raises:
        InvalidArgumentError: If record_type is not a dataclass type
    """
    if not is_record_type(record_type):
        raise InvalidArgumentError(
            "record_type", f"{record_type!r} is not a dataclass record type"
        )
    schema = _schemas.get(record_type)
    if schema is None:
        with _schemas_lock:
            schema = _schemas.get(record_type)
            if schema is None:
                schema = _build_schema(record_type)
                _schemas[record_type] = schema
    return schema


def record(cls: type) -> type:
    """
    Register a dataclass as a record type.

    Builds the descriptor table eagerly so declaration mistakes (two identity
    fields, clashing wire names) surface at import time.
    """
    schema_for(cls)
    return cls
