# =============================================================================
# barberpro/models/operations.py
# Queued Mutations and Their Typed Payloads
# =============================================================================
"""
Operations are durable intents to mutate a remote collection.

The payload is a small tagged union keyed by the operation kind:

    create -> CreatePayload(record)
    update -> UpdatePayload(record_id, changes)
    delete -> DeletePayload(record_id)

``build_payload`` is the only way raw consumer dicts enter the queue, so an
unknown collection, kind or field is rejected before anything is persisted.
"""

from __future__ import annotations
import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Type, Union

from barberpro.errors import InvalidOperationError
from barberpro.models.records import (
    RECORD_TYPES,
    RecordMixin,
    SyncStatus,
    to_camel,
    to_snake,
    utc_now_iso,
)


class OperationKind(str, Enum):
    """Kinds of queued mutations."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class CreatePayload:
    record: RecordMixin

    @property
    def record_id(self) -> str:
        return self.record.id

    def to_json(self) -> Dict[str, Any]:
        return self.record.to_payload()


@dataclass(frozen=True)
class UpdatePayload:
    record_id: str
    changes: Dict[str, Any]

    def to_json(self) -> Dict[str, Any]:
        return {"id": self.record_id, **self.changes}


@dataclass(frozen=True)
class DeletePayload:
    record_id: str

    def to_json(self) -> Dict[str, Any]:
        return {"id": self.record_id}


OperationPayload = Union[CreatePayload, UpdatePayload, DeletePayload]


def record_type_for(collection: str) -> Type[RecordMixin]:
    """Look up the record class registered for a collection."""
    try:
        return RECORD_TYPES[collection]
    except KeyError:
        raise InvalidOperationError(
            f"Unknown collection: {collection}", collection=collection
        ) from None


def _coerce_kind(kind: Union[str, OperationKind]) -> OperationKind:
    try:
        return OperationKind(kind)
    except ValueError:
        raise InvalidOperationError(f"Unknown operation kind: {kind}", kind=str(kind)) from None


def build_payload(
    collection: str,
    kind: Union[str, OperationKind],
    raw: Union[Mapping[str, Any], OperationPayload, RecordMixin],
) -> OperationPayload:
    """
    Coerce a raw consumer payload into the typed payload for (collection, kind).

    Args:
        collection: Registered collection name, e.g. "customers"
        kind: "create", "update" or "delete"
        raw: camelCase or snake_case mapping, an already typed payload, or a
            record (create). Update keys are normalised to camelCase.

    Returns:
        CreatePayload, UpdatePayload or DeletePayload

    Raises:
        InvalidOperationError: unknown collection/kind, missing id, unknown field
    """
    record_cls = record_type_for(collection)
    kind = _coerce_kind(kind)

    if isinstance(raw, (CreatePayload, UpdatePayload, DeletePayload)):
        expected = {
            OperationKind.CREATE: CreatePayload,
            OperationKind.UPDATE: UpdatePayload,
            OperationKind.DELETE: DeletePayload,
        }[kind]
        if not isinstance(raw, expected):
            raise InvalidOperationError(
                f"{type(raw).__name__} does not match kind {kind.value}",
                collection=collection,
                kind=kind.value,
            )
        if isinstance(raw, UpdatePayload):
            return build_payload(collection, kind, raw.to_json())
        return raw

    if kind is OperationKind.CREATE:
        if isinstance(raw, RecordMixin):
            if not isinstance(raw, record_cls):
                raise InvalidOperationError(
                    f"{type(raw).__name__} cannot be created in {collection}",
                    collection=collection,
                    kind=kind.value,
                )
            return CreatePayload(raw.with_status(SyncStatus.PENDING))
        try:
            record = record_cls.from_payload(raw, sync_status=SyncStatus.PENDING)
        except (TypeError, ValueError) as e:
            raise InvalidOperationError(str(e), collection=collection, kind=kind.value) from e
        return CreatePayload(record)

    if isinstance(raw, RecordMixin):
        raw = raw.to_payload()

    record_id = raw.get("id")
    if not record_id:
        raise InvalidOperationError(
            f"{kind.value} payload needs an id", collection=collection, kind=kind.value
        )

    if kind is OperationKind.DELETE:
        return DeletePayload(str(record_id))

    ignored = {"id", "created_at", "sync_status"}
    allowed = set(record_cls.field_names()) - ignored
    changes = {}
    unknown = []
    for key, value in raw.items():
        name = to_snake(key)
        if name in ignored:
            continue
        if name not in allowed:
            unknown.append(key)
            continue
        # Stored and sent under the camelCase key the field maps know
        changes[to_camel(name)] = value
    if unknown:
        raise InvalidOperationError(
            f"Unknown fields for {collection}: {sorted(unknown)}",
            collection=collection,
            kind=kind.value,
        )
    return UpdatePayload(str(record_id), changes)


def payload_from_json(
    collection: str, kind: Union[str, OperationKind], data: Mapping[str, Any]
) -> OperationPayload:
    """Rebuild a typed payload from its stored JSON form."""
    kind = _coerce_kind(kind)
    if kind is OperationKind.CREATE:
        record_cls = record_type_for(collection)
        return CreatePayload(record_cls.from_payload(data))
    return build_payload(collection, kind, data)


@dataclass
class Operation:
    """A queued mutation; append-only with a completion marker."""
    collection: str
    kind: OperationKind
    payload: OperationPayload
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    enqueued_at: str = field(default_factory=utc_now_iso)
    synced: bool = False
    attempts: int = 0
    last_error: Optional[str] = None
    last_attempt: Optional[str] = None
    seq: Optional[int] = None

    @property
    def record_id(self) -> str:
        return self.payload.record_id

    @classmethod
    def new(
        cls,
        collection: str,
        kind: Union[str, OperationKind],
        payload: Union[Mapping[str, Any], OperationPayload, RecordMixin],
    ) -> Operation:
        typed = build_payload(collection, kind, payload)
        return cls(collection=collection, kind=OperationKind(kind), payload=typed)

    def data_json(self) -> str:
        return json.dumps(self.payload.to_json(), default=str)
