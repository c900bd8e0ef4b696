# =============================================================================
# barberpro/models/records.py
# Domain Records Mirrored Between SQLite and Supabase
# =============================================================================
"""
Record dataclasses.

Each record type names its collection and knows three shapes:
- attributes (snake_case, Python side)
- payloads (camelCase dicts, what consumers pass to queue_operation)
- SQLite rows (lists serialized as JSON, booleans as 0/1)

The Supabase column names are handled separately in
``barberpro.data.field_mapping``.
"""

from __future__ import annotations
import json
import re
import uuid
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type


class SyncStatus(str, Enum):
    """Per-record sync state."""
    SYNCED = "synced"       # Confirmed against the remote store
    PENDING = "pending"     # Local change not yet confirmed
    CONFLICT = "conflict"   # Reserved; never assigned by the sync core


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with microseconds."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def new_record_id() -> str:
    return str(uuid.uuid4())


_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def to_snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


class RecordMixin:
    """Shared conversions for record dataclasses."""

    COLLECTION: ClassVar[str]
    JSON_FIELDS: ClassVar[Tuple[str, ...]] = ()
    BOOL_FIELDS: ClassVar[Tuple[str, ...]] = ()
    REQUIRED_FIELDS: ClassVar[Tuple[str, ...]] = ()
    # Kept on the device only; preserved when a server version replaces the row
    LOCAL_ONLY_FIELDS: ClassVar[Tuple[str, ...]] = ()

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def payload_keys(cls) -> List[str]:
        return [to_camel(name) for name in cls.field_names()]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], sync_status: Optional[SyncStatus] = None):
        """
        Build a record from a camelCase payload.

        Missing identifier and timestamps are filled in; unknown keys are ignored.
        """
        known = set(cls.field_names())
        values = {}
        for key, value in payload.items():
            name = to_snake(key)
            if name in known:
                values[name] = value

        missing = [name for name in cls.REQUIRED_FIELDS if values.get(name) in (None, "")]
        if missing:
            raise ValueError(f"{cls.__name__} payload missing required fields: {missing}")

        values.setdefault("id", None)
        if not values["id"]:
            values["id"] = new_record_id()
        if not values.get("created_at"):
            values["created_at"] = utc_now_iso()

        status = sync_status or values.get("sync_status") or SyncStatus.PENDING
        values["sync_status"] = SyncStatus(status)

        record = cls(**values)
        record._apply_defaults()
        return record

    def _apply_defaults(self) -> None:
        """Hook for type-specific defaults after construction."""

    def to_payload(self) -> Dict[str, Any]:
        data = asdict(self)
        data["sync_status"] = self.sync_status.value
        return {to_camel(k): v for k, v in data.items()}

    def to_row(self) -> Dict[str, Any]:
        row = asdict(self)
        row["sync_status"] = self.sync_status.value
        for name in self.JSON_FIELDS:
            row[name] = json.dumps(row[name] if row[name] is not None else [])
        for name in self.BOOL_FIELDS:
            row[name] = 1 if row[name] else 0
        return row

    @classmethod
    def from_row(cls, row: Mapping[str, Any]):
        values = {name: row[name] for name in cls.field_names()}
        for name in cls.JSON_FIELDS:
            values[name] = json.loads(values[name]) if values[name] else []
        for name in cls.BOOL_FIELDS:
            values[name] = bool(values[name])
        values["sync_status"] = SyncStatus(values["sync_status"] or SyncStatus.PENDING)
        return cls(**values)

    def apply_changes(self, changes: Mapping[str, Any]):
        """Return a copy with camelCase ``changes`` applied and updated_at bumped."""
        known = set(self.field_names()) - {"id", "created_at", "sync_status"}
        updates = {}
        for key, value in changes.items():
            name = to_snake(key)
            if name in known:
                updates[name] = value
        updates.setdefault("updated_at", utc_now_iso())
        return replace(self, **updates)

    def with_status(self, status: SyncStatus):
        return replace(self, sync_status=status)


@dataclass
class Customer(RecordMixin):
    """A barbershop customer and their latest visit."""

    COLLECTION: ClassVar[str] = "customers"
    JSON_FIELDS: ClassVar[Tuple[str, ...]] = ("services",)
    REQUIRED_FIELDS: ClassVar[Tuple[str, ...]] = ("name", "mobile")
    LOCAL_ONLY_FIELDS: ClassVar[Tuple[str, ...]] = ("photo_uri",)

    id: str
    name: str
    mobile: str
    visit_date: Optional[str] = None
    services: List[str] = field(default_factory=list)
    payment_amount: float = 0.0
    birthday: Optional[str] = None
    notes: Optional[str] = None
    photo_uri: Optional[str] = None
    created_at: str = ""
    updated_at: Optional[str] = None
    sync_status: SyncStatus = SyncStatus.PENDING

    def _apply_defaults(self) -> None:
        if not self.visit_date:
            self.visit_date = self.created_at[:10]
        if self.services is None:
            self.services = []
        self.payment_amount = float(self.payment_amount or 0.0)


@dataclass
class ServiceOffering(RecordMixin):
    """An entry in the shop's service catalogue (haircut, shave, ...)."""

    COLLECTION: ClassVar[str] = "services"
    BOOL_FIELDS: ClassVar[Tuple[str, ...]] = ("is_active",)
    REQUIRED_FIELDS: ClassVar[Tuple[str, ...]] = ("name",)

    id: str
    name: str
    price: float = 0.0
    duration: int = 30              # Minutes
    description: Optional[str] = None
    is_active: bool = True
    created_at: str = ""
    updated_at: Optional[str] = None
    sync_status: SyncStatus = SyncStatus.PENDING

    def _apply_defaults(self) -> None:
        self.price = float(self.price or 0.0)
        self.duration = int(self.duration or 0)
        self.is_active = bool(self.is_active)


RECORD_TYPES: Dict[str, Type[RecordMixin]] = {
    Customer.COLLECTION: Customer,
    ServiceOffering.COLLECTION: ServiceOffering,
}


def merge_local_only(server_record: RecordMixin, local_record: Optional[RecordMixin]):
    """Carry device-only fields from the local copy onto a server version."""
    if local_record is None or not server_record.LOCAL_ONLY_FIELDS:
        return server_record
    kept = {name: getattr(local_record, name) for name in server_record.LOCAL_ONLY_FIELDS}
    return replace(server_record, **kept)
