"""
Firestore Store

Store adapter over the synchronous google-cloud-firestore client. Query
descriptors map one-to-one onto the SDK's query primitives and mutation
markers onto the SDK's sentinels, so the store applies every update
atomically and enforces its own query rules (composite indexes, inequality
restrictions). Store errors propagate unchanged.
"""

import logging
import os
from typing import Any, Dict, List, Optional

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath as SDKFieldPath

from ..core.field_path import DOCUMENT_ID_SEGMENT, FieldPath
from ..core.mutations import DELETE_FIELD, SERVER_TIMESTAMP, ArrayRemove, ArrayUnion, Increment
from ..core.query import Cursor, Direction, QueryDescriptor
from .base import CollectionHandle, DocumentHandle, DocumentStore, RawDocument, WriteResult

logger = logging.getLogger(__name__)


def _field(path: FieldPath) -> str:
    """Render a field path in the SDK's string form (quoting unusual segments)."""
    if path.is_document_id:
        return DOCUMENT_ID_SEGMENT
    return SDKFieldPath(*path.segments).to_api_repr()


def _snapshot_to_raw(snapshot: Any) -> RawDocument:
    return RawDocument(
        key=snapshot.id,
        data=snapshot.to_dict() or {},
        exists=bool(snapshot.exists),
        native=snapshot,
    )


def _translate_value(value: Any) -> Any:
    if value is DELETE_FIELD:
        return firestore.DELETE_FIELD
    if value is SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    if isinstance(value, Increment):
        return firestore.Increment(value.delta)
    if isinstance(value, ArrayUnion):
        return firestore.ArrayUnion(list(value.values))
    if isinstance(value, ArrayRemove):
        return firestore.ArrayRemove(list(value.values))
    return value


def _write_result(result: Any) -> WriteResult:
    return WriteResult(update_time=getattr(result, "update_time", None))


class FirestoreDocument(DocumentHandle):
    """Document handle over a firestore DocumentReference."""

    def __init__(self, reference: Any):
        self._reference = reference

    @property
    def key(self) -> str:
        return self._reference.id

    @property
    def reference(self) -> Any:
        return self._reference

    def get(self) -> RawDocument:
        return _snapshot_to_raw(self._reference.get())

    def set(self, data: Dict[str, Any], merge: bool = False) -> WriteResult:
        return _write_result(self._reference.set(data, merge=merge))

    def update(self, mutations: Dict[FieldPath, Any]) -> WriteResult:
        field_updates = {_field(path): _translate_value(value) for path, value in mutations.items()}
        return _write_result(self._reference.update(field_updates))

    def delete(self) -> WriteResult:
        # delete() returns the commit timestamp directly
        return WriteResult(update_time=self._reference.delete())


class FirestoreCollection(CollectionHandle):
    """Collection handle over a firestore CollectionReference."""

    def __init__(self, reference: Any, path: str):
        self._reference = reference
        self._path = path

    @property
    def name(self) -> str:
        return self._path

    def document(self, key: Optional[str] = None) -> DocumentHandle:
        if key is None:
            return FirestoreDocument(self._reference.document())
        return FirestoreDocument(self._reference.document(key))

    def build_query(self, descriptor: QueryDescriptor) -> Any:
        """
        Translate a descriptor into a firestore Query.

        Returns:
            Native query, ready for get()
        """
        query = self._reference

        for clause in descriptor.filters:
            value = clause.value
            if clause.path.is_document_id:
                value = self._key_value(value)
            elif isinstance(value, tuple):
                value = list(value)
            query = query.where(filter=FieldFilter(_field(clause.path), clause.operator.value, value))

        for order in descriptor.orders:
            direction = (
                firestore.Query.DESCENDING
                if order.direction == Direction.DESCENDING
                else firestore.Query.ASCENDING
            )
            query = query.order_by(_field(order.path), direction=direction)

        if not descriptor.orders and self._has_plain_anchor(descriptor):
            # Anchors without a native snapshot are positioned by key
            query = query.order_by(DOCUMENT_ID_SEGMENT)

        if descriptor.start is not None:
            values = self._cursor_values(descriptor, descriptor.start)
            query = query.start_at(values) if descriptor.start.inclusive else query.start_after(values)
        if descriptor.end is not None:
            values = self._cursor_values(descriptor, descriptor.end)
            query = query.end_at(values) if descriptor.end.inclusive else query.end_before(values)

        if descriptor.limit is not None:
            if descriptor.limit.from_end:
                query = query.limit_to_last(descriptor.limit.count)
            else:
                query = query.limit(descriptor.limit.count)

        return query

    def run_query(self, descriptor: QueryDescriptor) -> List[RawDocument]:
        query = self.build_query(descriptor)
        return [_snapshot_to_raw(snapshot) for snapshot in query.get()]

    def _key_value(self, value: Any) -> Any:
        """Document-id filters compare against references, not bare keys."""
        if isinstance(value, str):
            return self._reference.document(value)
        if isinstance(value, (list, tuple)):
            return [self._key_value(v) for v in value]
        return value

    def _cursor_values(self, descriptor: QueryDescriptor, cursor: Cursor) -> Any:
        if cursor.anchor is not None:
            if cursor.anchor.native is not None:
                return cursor.anchor.native
            if not descriptor.orders:
                return [self._reference.document(cursor.anchor.key)]
            return [self._anchor_value(order.path, cursor.anchor) for order in descriptor.orders]
        return [
            self._key_value(value) if order.path.is_document_id else value
            for order, value in zip(descriptor.orders, cursor.values)
        ]

    @staticmethod
    def _has_plain_anchor(descriptor: QueryDescriptor) -> bool:
        return any(
            cursor is not None and cursor.anchor is not None and cursor.anchor.native is None
            for cursor in (descriptor.start, descriptor.end)
        )

    def _anchor_value(self, path: FieldPath, anchor: RawDocument) -> Any:
        if path.is_document_id:
            return self._reference.document(anchor.key)
        value: Any = anchor.data
        for segment in path:
            value = value.get(segment) if isinstance(value, dict) else None
        return value


class FirestoreStore(DocumentStore):
    """
    Firestore-backed store.

    Connection Management:
    - Uses a class-level singleton firestore.Client
    - The client is created lazily on first collection access
    - FIRESTORE_EMULATOR_HOST is exported when an emulator host is configured
    """

    _client: Optional[firestore.Client] = None

    def __init__(
        self,
        project_id: Optional[str] = None,
        database: str = "(default)",
        emulator_host: Optional[str] = None,
    ):
        self._project_id = project_id
        self._database = database
        self._emulator_host = emulator_host

    def _get_client(self) -> firestore.Client:
        if FirestoreStore._client is None:
            if self._emulator_host:
                os.environ["FIRESTORE_EMULATOR_HOST"] = self._emulator_host
                logger.info(f"Using Firestore emulator at {self._emulator_host}")
            FirestoreStore._client = firestore.Client(
                project=self._project_id, database=self._database
            )
            logger.info(
                f"Firestore store connected: project={self._project_id or '<default>'} "
                f"database={self._database}"
            )
        return FirestoreStore._client

    def collection(self, path: str) -> CollectionHandle:
        return FirestoreCollection(self._get_client().collection(path), path)

    def close(self) -> None:
        FirestoreStore.reset_connection()

    @classmethod
    def reset_connection(cls) -> None:
        """Close and drop the shared client."""
        if cls._client is not None:
            cls._client.close()
            cls._client = None
            logger.info("Firestore connection reset")
