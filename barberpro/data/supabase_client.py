# =============================================================================
# barberpro/data/supabase_client.py
# Supabase Remote Store Client for BarberPro
# Translates records to table calls and back; never retries
# =============================================================================

from __future__ import annotations
from typing import Any, Dict, List, Mapping, Optional
import logging

from supabase import AsyncClient, acreate_client

from barberpro.config import Settings
from barberpro.data.field_mapping import FieldMap, field_map_for
from barberpro.errors import ConfigurationError, RemoteError
from barberpro.models import RecordMixin, SyncStatus, record_type_for

logger = logging.getLogger(__name__)


async def create_remote_client(settings: Settings) -> AsyncClient:
    """
    Create an async Supabase client from settings.

    Expects credentials in .barberpro/secrets.toml or the environment:
        [supabase]
        url = "https://your-project.supabase.co"
        key = "your-anon-key"

    Raises:
        ConfigurationError: if url or key is missing
    """
    if not settings.supabase_url:
        raise ConfigurationError("Supabase URL is not configured", config_key="supabase.url")
    if not settings.supabase_key:
        raise ConfigurationError("Supabase key is not configured", config_key="supabase.key")

    return await acreate_client(settings.supabase_url, settings.supabase_key)


class RemoteStoreClient:
    """
    Thin adapter over the Supabase table API.

    Every failure surfaces as RemoteError carrying the original cause.
    Retry policy belongs to the SyncCoordinator.
    """

    PAGE_SIZE = 1000  # PostgREST default row limit

    def __init__(self, client: AsyncClient):
        self.client = client

    def _to_record(self, collection: str, field_map: FieldMap, row: Mapping[str, Any]) -> RecordMixin:
        record_cls = record_type_for(collection)
        return record_cls.from_payload(field_map.to_local(row), sync_status=SyncStatus.SYNCED)

    async def fetch_all(self, collection: str) -> List[RecordMixin]:
        """
        Fetch ALL records of a collection, newest first (handles the 1000 row limit).

        Returns:
            Records translated to the local representation, status synced
        """
        field_map = field_map_for(collection)
        rows: List[Dict[str, Any]] = []
        offset = 0

        try:
            while True:
                response = await (
                    self.client.table(field_map.remote_table)
                    .select("*")
                    .order("created_at", desc=True)
                    .range(offset, offset + self.PAGE_SIZE - 1)
                    .execute()
                )
                batch = response.data or []
                rows.extend(batch)
                # Fewer than a full page means we've reached the end
                if len(batch) < self.PAGE_SIZE:
                    break
                offset += self.PAGE_SIZE
        except Exception as e:
            raise RemoteError(
                f"Error fetching {field_map.remote_table}: {e}",
                table=field_map.remote_table,
                cause=e,
            ) from e

        logger.debug(f"Fetched {len(rows)} rows from {field_map.remote_table}")
        records = []
        for row in rows:
            try:
                records.append(self._to_record(collection, field_map, row))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed {collection} row {row.get('id')}: {e}")
        return records

    async def create(self, record: RecordMixin) -> RecordMixin:
        """
        Insert a record, keyed by its client-generated id.

        Upserts on ``id`` so replaying an already-delivered create is harmless.

        Returns:
            The server's version (server timestamps populated)
        """
        collection = record.COLLECTION
        field_map = field_map_for(collection)
        row = field_map.to_remote(record.to_payload())

        try:
            response = await (
                self.client.table(field_map.remote_table)
                .upsert(row, on_conflict="id")
                .execute()
            )
        except Exception as e:
            raise RemoteError(
                f"Error creating {collection} {record.id}: {e}",
                table=field_map.remote_table,
                cause=e,
            ) from e

        if not response.data:
            raise RemoteError(
                f"Create of {collection} {record.id} returned no row",
                table=field_map.remote_table,
            )
        return self._to_record(collection, field_map, response.data[0])

    async def update(
        self, collection: str, record_id: str, changes: Mapping[str, Any]
    ) -> Optional[RecordMixin]:
        """
        Apply a partial update by id.

        Args:
            collection: Collection name
            record_id: Record identifier
            changes: camelCase fields to change

        Returns:
            The updated server record, or None when no change maps to a
            writable column (local-only edits settle without a request)
        """
        field_map = field_map_for(collection)
        row = field_map.to_remote({k: v for k, v in changes.items() if k != "id"})
        if not row:
            logger.debug(f"No remote columns in update of {collection} {record_id}; not sent")
            return None

        try:
            response = await (
                self.client.table(field_map.remote_table)
                .update(row)
                .eq("id", record_id)
                .execute()
            )
        except Exception as e:
            raise RemoteError(
                f"Error updating {collection} {record_id}: {e}",
                table=field_map.remote_table,
                cause=e,
            ) from e

        if not response.data:
            raise RemoteError(
                f"Update matched no {collection} row with id {record_id}",
                table=field_map.remote_table,
                details={"record_id": record_id},
            )
        return self._to_record(collection, field_map, response.data[0])

    async def remove(self, collection: str, record_id: str) -> None:
        """Delete a record by id. Deleting an absent row is not an error."""
        field_map = field_map_for(collection)

        try:
            await (
                self.client.table(field_map.remote_table)
                .delete()
                .eq("id", record_id)
                .execute()
            )
        except Exception as e:
            raise RemoteError(
                f"Error deleting {collection} {record_id}: {e}",
                table=field_map.remote_table,
                cause=e,
            ) from e

    async def aclose(self) -> None:
        """Close the underlying HTTP sessions where the client exposes them."""
        postgrest = getattr(self.client, "postgrest", None)
        close = getattr(postgrest, "aclose", None)
        if close is not None:
            await close()
