"""
Record <-> Field Map Converter

Translates records into the field maps the backing store consumes and back.
The converter owns the identity-field rule: the field declared with
document_id() is never written into a field map and is always populated from
the storage key on read.

Stored values are checked against the declared field types with pydantic
TypeAdapters in lax mode, so benign widening (int stored for a float field)
passes while genuinely incompatible values raise ConversionError.
"""

import logging
import threading
from collections.abc import Mapping
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import ConfigDict, TypeAdapter, ValidationError
from pydantic.errors import PydanticSchemaGenerationError, PydanticUserError

from ..common.error_handling import ConversionError, InvalidArgumentError
from .schema import FieldDescriptor, RecordSchema, is_record_type, schema_for

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ADAPTER_CONFIG = ConfigDict(arbitrary_types_allowed=True)


def _build_adapter(hint: Any) -> Optional[TypeAdapter]:
    """TypeAdapter for a declared field type, or None when the field is untyped."""
    if hint is Any:
        return None
    try:
        return TypeAdapter(hint, config=_ADAPTER_CONFIG)
    except PydanticSchemaGenerationError:
        logger.debug(f"No validator for field type {hint!r}; values pass through unchecked")
        return None
    except PydanticUserError:
        # Types that carry their own config (dataclasses, TypedDicts) reject ours
        return TypeAdapter(hint)


def to_storage_value(value: Any) -> Any:
    """
    Normalise a literal for storage.

    Records become field maps (without their identity fields) and tuples
    become lists, recursively.
    """
    if is_record_type(type(value)):
        return converter_for(type(value)).to_field_map(value)
    if isinstance(value, (list, tuple)):
        return [to_storage_value(item) for item in value]
    if isinstance(value, dict):
        return {k: to_storage_value(v) for k, v in value.items()}
    return value


class RecordConverter(Generic[T]):
    """
    Stateless converter for one record type.

    Obtain instances with converter_for(); they are cached per type.
    """

    def __init__(self, record_type: Type[T]):
        self.record_type = record_type
        self.schema: RecordSchema = schema_for(record_type)
        self._adapters: Dict[str, Optional[TypeAdapter]] = {}

    def to_field_map(self, record: T) -> Dict[str, Any]:
        """
        Convert a record into its stored field map.

        Only fields declared with stored() are written, under their wire
        names. The identity field and None values are omitted.

        Args:
            record: Instance of this converter's record type

        Returns:
            Field map keyed by wire name

        Raises:
            InvalidArgumentError: If record is None or of another type
        """
        if record is None:
            raise InvalidArgumentError("record", "record must not be None")
        if not isinstance(record, self.record_type):
            raise InvalidArgumentError(
                "record",
                f"expected {self.schema.name}, got {type(record).__name__}",
            )

        field_map: Dict[str, Any] = {}
        for descriptor in self.schema.stored_fields:
            value = getattr(record, descriptor.attr_name, None)
            if value is None:
                continue
            field_map[descriptor.wire_name] = to_storage_value(value)
        return field_map

    def from_storage(
        self,
        key: str,
        field_map: Optional[Mapping],
        exists: bool = True,
    ) -> Optional[T]:
        """
        Build a record from a stored document.

        Args:
            key: Storage key, assigned to the identity field
            field_map: Stored field map (unknown keys are ignored)
            exists: Existence flag of the stored document

        Returns:
            The record, or None when the document does not exist

        Raises:
            ConversionError: If a stored value does not fit its declared type
        """
        if not exists:
            return None
        return self._build(field_map or {}, key)

    def from_document(self, document: Any) -> Optional[T]:
        """Build a record from a RawDocument returned by a store adapter."""
        return self.from_storage(document.key, document.data, document.exists)

    def _build(self, field_map: Mapping, key: Optional[str]) -> T:
        kwargs: Dict[str, Any] = {}
        late: Dict[str, Any] = {}

        for descriptor in self.schema.stored_fields:
            if descriptor.wire_name not in field_map:
                continue
            value = self._convert_value(descriptor, field_map[descriptor.wire_name])
            if descriptor.init:
                kwargs[descriptor.attr_name] = value
            else:
                late[descriptor.attr_name] = value

        identity = self.schema.identity
        if identity is not None and key is not None:
            if identity.init:
                kwargs[identity.attr_name] = key
            else:
                late[identity.attr_name] = key

        try:
            instance = self.record_type(**kwargs)
        except TypeError as e:
            raise ConversionError(self.schema.name, "__init__", dict(field_map), str(e)) from e

        for attr_name, value in late.items():
            setattr(instance, attr_name, value)
        return instance

    def _convert_value(self, descriptor: FieldDescriptor, value: Any) -> Any:
        if value is None:
            return self._validate(descriptor, value)

        nested = descriptor.record_type
        if nested is not None:
            if not isinstance(value, Mapping):
                raise ConversionError(self.schema.name, descriptor.attr_name, value, "expected a map")
            return converter_for(nested)._build(value, None)

        item_type = descriptor.item_record_type
        if item_type is not None:
            if not isinstance(value, (list, tuple)):
                raise ConversionError(self.schema.name, descriptor.attr_name, value, "expected an array")
            items: List[Any] = []
            for item in value:
                if not isinstance(item, Mapping):
                    raise ConversionError(
                        self.schema.name, descriptor.attr_name, item, "expected an array of maps"
                    )
                items.append(converter_for(item_type)._build(item, None))
            return items

        return self._validate(descriptor, value)

    def _validate(self, descriptor: FieldDescriptor, value: Any) -> Any:
        if descriptor.attr_name not in self._adapters:
            self._adapters[descriptor.attr_name] = _build_adapter(descriptor.type_hint)
        adapter = self._adapters[descriptor.attr_name]
        if adapter is None:
            return value
        try:
            return adapter.validate_python(value)
        except ValidationError as e:
            first = e.errors()[0]["msg"] if e.errors() else None
            raise ConversionError(self.schema.name, descriptor.attr_name, value, first) from e

    def __repr__(self) -> str:
        return f"RecordConverter({self.schema.name})"


_converters: Dict[type, RecordConverter] = {}
_converters_lock = threading.Lock()


def converter_for(record_type: Type[T]) -> RecordConverter[T]:
    """Get the cached converter for a record type."""
    converter = _converters.get(record_type)
    if converter is None:
        with _converters_lock:
            converter = _converters.get(record_type)
            if converter is None:
                converter = RecordConverter(record_type)
                _converters[record_type] = converter
    return converter
