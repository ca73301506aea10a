"""
fireschema - typed document access for document stores

Shared runtime for generated per-collection accessors: records declared as
dataclasses, typed field selectors, immutable query builders, atomic update
builders and a converter that keeps document ids out of stored data.

Public API:
- record, stored, document_id: declare record types
- fields, FieldPath: typed and explicit field paths
- BaseCollectionRef: base class for collection accessors
- QueryBuilder, UpdateBuilder, Operator, Direction: builders
- RecordConverter, converter_for: record <-> field map conversion
- DELETE_FIELD, SERVER_TIMESTAMP, Increment, ArrayUnion, ArrayRemove: mutation markers
- get_store, reset_store: store factory (FIRESCHEMA_BACKEND)
- FireSchemaError and subclasses: error taxonomy

Usage:
    from dataclasses import dataclass
    from fireschema import BaseCollectionRef, document_id, fields, get_store, record, stored

    @record
    @dataclass
    class User:
        id: str = document_id()
        name: str = stored(default="")
        age: int = stored(default=0)

    class Users(BaseCollectionRef[User]):
        record_type = User

    users = Users(get_store(), "users")
    adults = users.where_greater_than_or_equal_to(fields(User).age, 18).fetch()
"""

from .common.error_handling import (
    ConversionError,
    FireSchemaError,
    InvalidArgumentError,
    NotFoundError,
    PreconditionFailedError,
)
from .common.config import StoreSettings, get_settings
from .common.logger import get_logger, setup_logging
from .core.schema import FieldDescriptor, RecordSchema, document_id, record, schema_for, stored
from .core.field_path import FieldPath, FieldSelector, fields, resolve_path
from .core.mutations import DELETE_FIELD, SERVER_TIMESTAMP, ArrayRemove, ArrayUnion, Increment
from .core.converter import RecordConverter, converter_for
from .core.query import (
    MAX_SET_OPERATOR_VALUES,
    Direction,
    Operator,
    QueryBuilder,
    QueryDescriptor,
)
from .core.update import UpdateBuilder
from .core.collection import BaseCollectionRef
from .stores import (
    CollectionHandle,
    DocumentHandle,
    DocumentStore,
    RawDocument,
    WriteResult,
    get_store,
    reset_store,
)
from .version import __version__

__all__ = [
    # Records
    "record",
    "stored",
    "document_id",
    "schema_for",
    "RecordSchema",
    "FieldDescriptor",
    # Paths
    "FieldPath",
    "FieldSelector",
    "fields",
    "resolve_path",
    # Conversion
    "RecordConverter",
    "converter_for",
    # Builders
    "QueryBuilder",
    "QueryDescriptor",
    "Operator",
    "Direction",
    "MAX_SET_OPERATOR_VALUES",
    "UpdateBuilder",
    "BaseCollectionRef",
    # Mutation markers
    "DELETE_FIELD",
    "SERVER_TIMESTAMP",
    "Increment",
    "ArrayUnion",
    "ArrayRemove",
    # Stores
    "get_store",
    "reset_store",
    "DocumentStore",
    "CollectionHandle",
    "DocumentHandle",
    "RawDocument",
    "WriteResult",
    # Configuration and logging
    "StoreSettings",
    "get_settings",
    "setup_logging",
    "get_logger",
    # Errors
    "FireSchemaError",
    "InvalidArgumentError",
    "PreconditionFailedError",
    "NotFoundError",
    "ConversionError",
    "__version__",
]
