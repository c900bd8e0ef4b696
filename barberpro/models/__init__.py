# =============================================================================
# barberpro/models/__init__.py
# Domain Records and Sync Operations
# =============================================================================

from barberpro.models.records import (
    SyncStatus,
    Customer,
    ServiceOffering,
    RecordMixin,
    RECORD_TYPES,
    utc_now_iso,
)

from barberpro.models.operations import (
    OperationKind,
    Operation,
    OperationPayload,
    CreatePayload,
    UpdatePayload,
    DeletePayload,
    build_payload,
    payload_from_json,
    record_type_for,
)

__all__ = [
    "SyncStatus",
    "Customer",
    "ServiceOffering",
    "RecordMixin",
    "RECORD_TYPES",
    "utc_now_iso",
    "OperationKind",
    "Operation",
    "OperationPayload",
    "CreatePayload",
    "UpdatePayload",
    "DeletePayload",
    "build_payload",
    "payload_from_json",
    "record_type_for",
]
