# =============================================================================
# barberpro/data/field_mapping.py
# camelCase <-> snake_case Translation at the Supabase Boundary
# =============================================================================
"""
Explicit, table-driven field maps. Nothing here is derived by string
manipulation: a key missing from a map never crosses the boundary, which keeps
round-trips exact (visitDate <-> visit_date, paymentAmount <-> payment_amount).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping
import logging

from barberpro.errors import InvalidOperationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldMap:
    """Local payload key -> remote column for one collection."""
    remote_table: str
    columns: Mapping[str, str]
    # Server-managed: read from the remote, never written to it
    read_only: FrozenSet[str] = field(default_factory=frozenset)

    def to_remote(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Translate a camelCase payload to a writable snake_case row."""
        row = {}
        for key, value in payload.items():
            column = self.columns.get(key)
            if column is None:
                logger.debug(f"{self.remote_table}: local-only field '{key}' not sent")
                continue
            if key in self.read_only:
                continue
            row[column] = value
        return row

    def to_local(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        """Translate a remote row to a camelCase payload; unknown columns are dropped."""
        inverse = {column: key for key, column in self.columns.items()}
        return {inverse[column]: value for column, value in row.items() if column in inverse}


FIELD_MAPS: Dict[str, FieldMap] = {
    "customers": FieldMap(
        remote_table="customers",
        columns={
            "id": "id",
            "name": "name",
            "mobile": "mobile",
            "visitDate": "visit_date",
            "services": "services",
            "paymentAmount": "payment_amount",
            "birthday": "birthday",
            "notes": "notes",
            "createdAt": "created_at",
            "updatedAt": "updated_at",
        },
        read_only=frozenset({"createdAt", "updatedAt"}),
    ),
    "services": FieldMap(
        remote_table="services",
        columns={
            "id": "id",
            "name": "name",
            "price": "price",
            "duration": "duration",
            "description": "description",
            "isActive": "is_active",
            "createdAt": "created_at",
            "updatedAt": "updated_at",
        },
        read_only=frozenset({"createdAt", "updatedAt"}),
    ),
}


def field_map_for(collection: str) -> FieldMap:
    try:
        return FIELD_MAPS[collection]
    except KeyError:
        raise InvalidOperationError(
            f"No field map registered for collection '{collection}'", collection=collection
        ) from None
