# =============================================================================
# barberpro/data/__init__.py
# Remote (Supabase) Data Access
# =============================================================================

from barberpro.data.field_mapping import FieldMap, FIELD_MAPS, field_map_for
from barberpro.data.supabase_client import RemoteStoreClient, create_remote_client

__all__ = [
    "FieldMap",
    "FIELD_MAPS",
    "field_map_for",
    "RemoteStoreClient",
    "create_remote_client",
]
