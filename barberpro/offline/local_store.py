# =============================================================================
# barberpro/offline/local_store.py
# Local SQLite Store for Offline Operations
# =============================================================================
"""
LocalStore - SQLite-based local storage that mirrors the Supabase tables.

Holds:
- one table per collection (customers, services) with a sync_status column
- the sync_queue operation log (append-only, completion marker)
- a single-row analytics_cache with its cached_at timestamp

Every write runs in one transaction: either it fully succeeds or prior
state is unchanged. Methods are coroutines so callers on the event loop
treat each call as a suspension point; the SQLite work itself runs inline
on the loop thread.
"""

from __future__ import annotations
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional
import logging

import numpy as np
import pandas as pd

from barberpro.errors import (
    NotInitializedError,
    StorageError,
    StorageInitError,
    StorageWriteError,
)
from barberpro.models import (
    CreatePayload,
    DeletePayload,
    Operation,
    OperationKind,
    RecordMixin,
    SyncStatus,
    UpdatePayload,
    payload_from_json,
    record_type_for,
)
from barberpro.models.records import merge_local_only

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _json_safe(value: Any) -> Any:
    """Make analytics values JSON serializable (numpy scalars, timestamps, NaN)."""
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, (datetime, pd.Timestamp)):
        return value.isoformat()
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return None if np.isnan(value) else float(value)
    if isinstance(value, float) and pd.isna(value):
        return None
    return value


class LocalStore:
    """
    Local SQLite store for records, the operation queue and the analytics cache.

    Usage:
        store = LocalStore(Path("local_data/barberpro.db"))
        await store.initialize()
        customers = await store.get_all_records("customers")
    """

    DEFAULT_DB_PATH = Path("local_data") / "barberpro.db"
    SNAPSHOT_TTL = timedelta(hours=1)

    # Schema definitions matching the Supabase tables
    SCHEMA = {
        "customers": """
            CREATE TABLE IF NOT EXISTS customers (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                mobile TEXT NOT NULL,
                visit_date TEXT NOT NULL,
                services TEXT NOT NULL,
                payment_amount REAL NOT NULL,
                birthday TEXT,
                notes TEXT,
                photo_uri TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT,
                sync_status TEXT NOT NULL DEFAULT 'pending'
            )
        """,
        "services": """
            CREATE TABLE IF NOT EXISTS services (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                price REAL NOT NULL,
                duration INTEGER NOT NULL,
                description TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT,
                sync_status TEXT NOT NULL DEFAULT 'pending'
            )
        """,
        "sync_queue": """
            CREATE TABLE IF NOT EXISTS sync_queue (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                table_name TEXT NOT NULL,
                operation TEXT NOT NULL,
                record_id TEXT NOT NULL,
                data_json TEXT NOT NULL,
                enqueued_at TEXT NOT NULL,
                synced INTEGER NOT NULL DEFAULT 0,
                attempts INTEGER NOT NULL DEFAULT 0,
                last_attempt TEXT,
                last_error TEXT
            )
        """,
        "sync_queue_pending_idx": """
            CREATE INDEX IF NOT EXISTS sync_queue_pending_idx
            ON sync_queue (synced, enqueued_at, seq)
        """,
        "analytics_cache": """
            CREATE TABLE IF NOT EXISTS analytics_cache (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                data TEXT NOT NULL,
                cached_at TEXT NOT NULL
            )
        """,
    }

    def __init__(
        self,
        db_path: Optional[Path] = None,
        snapshot_ttl: Optional[timedelta] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            db_path: Path to the SQLite file (":memory:" is accepted)
            snapshot_ttl: Freshness window of the analytics cache
            clock: Returns the current UTC time (injectable for tests)
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.snapshot_ttl = snapshot_ttl or self.SNAPSHOT_TTL
        self._clock = clock or _utc_now
        self._connection: Optional[sqlite3.Connection] = None
        self._initialized = False

    def _now_iso(self) -> str:
        return self._clock().isoformat(timespec="microseconds")

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # CONNECTION & SCHEMA
    # =========================================================================

    def _connect(self) -> sqlite3.Connection:
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        connection = sqlite3.connect(str(self.db_path))
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA journal_mode = WAL")
        connection.execute("PRAGMA synchronous = FULL")
        return connection

    def _conn(self) -> sqlite3.Connection:
        if not self._initialized or self._connection is None:
            raise NotInitializedError()
        return self._connection

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for a write transaction; rolls back and re-raises on error."""
        conn = self._conn()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    async def initialize(self) -> None:
        """Open the database and create tables if absent. Idempotent."""
        if self._initialized:
            return

        try:
            connection = self._connect()
            for name, ddl in self.SCHEMA.items():
                connection.execute(ddl)
                logger.debug(f"Created/verified schema object: {name}")
            connection.commit()
        except (sqlite3.Error, OSError) as e:
            raise StorageInitError(
                f"Cannot open local database: {e}", db_path=str(self.db_path)
            ) from e

        self._connection = connection
        self._initialized = True
        logger.info(f"Local store initialized at: {self.db_path}")

    async def close(self) -> None:
        """Close the database connection. The store must be re-initialized to be reused."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        self._initialized = False

    # =========================================================================
    # RECORDS
    # =========================================================================

    def _write_record(self, conn: sqlite3.Connection, record: RecordMixin) -> None:
        row = record.to_row()
        columns = ", ".join(row.keys())
        placeholders = ", ".join(["?" for _ in row])
        conn.execute(
            f"INSERT OR REPLACE INTO {record.COLLECTION} ({columns}) VALUES ({placeholders})",
            list(row.values()),
        )

    def _read_record(
        self, conn: sqlite3.Connection, collection: str, record_id: str
    ) -> Optional[RecordMixin]:
        record_cls = record_type_for(collection)
        row = conn.execute(
            f"SELECT * FROM {collection} WHERE id = ?", [record_id]
        ).fetchone()
        return record_cls.from_row(row) if row else None

    async def get_all_records(self, collection: str) -> List[RecordMixin]:
        """Get all records of a collection, newest created first."""
        record_cls = record_type_for(collection)
        conn = self._conn()
        try:
            rows = conn.execute(
                f"SELECT * FROM {collection} ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Error reading {collection}: {e}", table=collection) from e
        return [record_cls.from_row(row) for row in rows]

    async def get_record(self, collection: str, record_id: str) -> Optional[RecordMixin]:
        """Get one record by id, or None."""
        conn = self._conn()
        try:
            return self._read_record(conn, collection, record_id)
        except sqlite3.Error as e:
            raise StorageError(f"Error reading {collection}: {e}", table=collection) from e

    async def upsert_record(self, record: RecordMixin) -> None:
        """Insert or replace a record by id, keeping the caller's sync_status."""
        try:
            with self.transaction() as conn:
                self._write_record(conn, record)
        except sqlite3.Error as e:
            raise StorageWriteError(
                f"Error saving {record.COLLECTION} {record.id}: {e}", table=record.COLLECTION
            ) from e

    async def delete_record(self, collection: str, record_id: str) -> None:
        """Delete a record; a missing row counts as already deleted."""
        record_type_for(collection)
        try:
            with self.transaction() as conn:
                conn.execute(f"DELETE FROM {collection} WHERE id = ?", [record_id])
        except sqlite3.Error as e:
            raise StorageWriteError(
                f"Error deleting {collection} {record_id}: {e}", table=collection
            ) from e

    # =========================================================================
    # RECONCILIATION PRIMITIVES
    # =========================================================================

    async def apply_remote_record(self, record: RecordMixin) -> str:
        """
        Merge one server record into the local table.

        Decided against the local status read inside the same transaction:
        - no local row         -> insert as synced        ("inserted")
        - local row synced     -> overwrite with remote   ("updated")
        - local pending/conflict -> leave untouched       ("kept_local")
        - delete still queued    -> stay deleted          ("kept_local")
        """
        collection = record.COLLECTION
        try:
            with self.transaction() as conn:
                queued_delete = conn.execute(
                    """
                    SELECT 1 FROM sync_queue
                    WHERE synced = 0 AND table_name = ? AND record_id = ? AND operation = ?
                    LIMIT 1
                    """,
                    [collection, record.id, OperationKind.DELETE.value],
                ).fetchone()
                if queued_delete is not None:
                    return "kept_local"

                local = self._read_record(conn, collection, record.id)
                if local is not None and local.sync_status is not SyncStatus.SYNCED:
                    return "kept_local"
                merged = merge_local_only(record.with_status(SyncStatus.SYNCED), local)
                self._write_record(conn, merged)
                return "inserted" if local is None else "updated"
        except sqlite3.Error as e:
            raise StorageWriteError(
                f"Error applying remote {collection} {record.id}: {e}", table=collection
            ) from e

    async def delete_if_synced(self, collection: str, record_id: str) -> bool:
        """Delete a record only if it is synced. Returns True if a row was removed."""
        record_type_for(collection)
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    f"DELETE FROM {collection} WHERE id = ? AND sync_status = ?",
                    [record_id, SyncStatus.SYNCED.value],
                )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StorageWriteError(
                f"Error deleting {collection} {record_id}: {e}", table=collection
            ) from e

    # =========================================================================
    # OPERATION QUEUE
    # =========================================================================

    def _apply_optimistic(self, conn: sqlite3.Connection, operation: Operation) -> None:
        payload = operation.payload
        collection = operation.collection

        if isinstance(payload, CreatePayload):
            self._write_record(conn, payload.record.with_status(SyncStatus.PENDING))
        elif isinstance(payload, UpdatePayload):
            local = self._read_record(conn, collection, payload.record_id)
            if local is None:
                logger.warning(
                    f"Update queued for {collection} {payload.record_id} with no local copy"
                )
                return
            updated = local.apply_changes(payload.changes).with_status(SyncStatus.PENDING)
            self._write_record(conn, updated)
        elif isinstance(payload, DeletePayload):
            conn.execute(f"DELETE FROM {collection} WHERE id = ?", [payload.record_id])

    async def enqueue_operation(self, operation: Operation, apply_locally: bool = False) -> None:
        """
        Append an operation to the sync queue.

        Args:
            operation: The operation to persist
            apply_locally: Also apply the optimistic record write in the same
                transaction (create/update -> pending row, delete -> row removed)

        Raises:
            StorageWriteError: nothing was persisted; the caller should retry
        """
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO sync_queue
                        (id, table_name, operation, record_id, data_json, enqueued_at, synced)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        operation.id,
                        operation.collection,
                        operation.kind.value,
                        operation.record_id,
                        operation.data_json(),
                        operation.enqueued_at,
                        1 if operation.synced else 0,
                    ],
                )
                if apply_locally:
                    self._apply_optimistic(conn, operation)
        except sqlite3.Error as e:
            raise StorageWriteError(
                f"Error adding operation {operation.id} to sync queue: {e}", table="sync_queue"
            ) from e

        operation.seq = cursor.lastrowid
        logger.debug(
            f"Queued {operation.kind.value} {operation.collection}/{operation.record_id} "
            f"as {operation.id}"
        )

    def _row_to_operation(self, row: sqlite3.Row) -> Operation:
        payload = payload_from_json(row["table_name"], row["operation"], json.loads(row["data_json"]))
        return Operation(
            id=row["id"],
            collection=row["table_name"],
            kind=OperationKind(row["operation"]),
            payload=payload,
            enqueued_at=row["enqueued_at"],
            synced=bool(row["synced"]),
            attempts=row["attempts"],
            last_error=row["last_error"],
            last_attempt=row["last_attempt"],
            seq=row["seq"],
        )

    async def get_pending_operations(self) -> List[Operation]:
        """Get unsynced operations in FIFO order (enqueue time, then sequence)."""
        conn = self._conn()
        try:
            rows = conn.execute(
                """
                SELECT * FROM sync_queue
                WHERE synced = 0
                ORDER BY enqueued_at ASC, seq ASC
                """
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Error reading sync queue: {e}", table="sync_queue") from e
        return [self._row_to_operation(row) for row in rows]

    async def count_pending_operations(self) -> int:
        conn = self._conn()
        try:
            row = conn.execute("SELECT COUNT(*) AS count FROM sync_queue WHERE synced = 0").fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Error reading sync queue: {e}", table="sync_queue") from e
        return row["count"]

    async def mark_operation_synced(self, operation_id: str) -> None:
        """Set the completion marker. Marking twice is a no-op."""
        try:
            with self.transaction() as conn:
                conn.execute(
                    "UPDATE sync_queue SET synced = 1, last_attempt = ? WHERE id = ?",
                    [self._now_iso(), operation_id],
                )
        except sqlite3.Error as e:
            raise StorageWriteError(
                f"Error marking operation {operation_id} as synced: {e}", table="sync_queue"
            ) from e

    async def record_operation_failure(self, operation_id: str, error: str) -> None:
        """Record a failed delivery attempt; the operation stays pending."""
        try:
            with self.transaction() as conn:
                conn.execute(
                    """
                    UPDATE sync_queue
                    SET attempts = attempts + 1, last_attempt = ?, last_error = ?
                    WHERE id = ? AND synced = 0
                    """,
                    [self._now_iso(), error, operation_id],
                )
        except sqlite3.Error as e:
            raise StorageWriteError(
                f"Error recording failure of operation {operation_id}: {e}", table="sync_queue"
            ) from e

    async def complete_operation(
        self, operation: Operation, server_record: Optional[RecordMixin] = None
    ) -> None:
        """
        Mark an operation synced and settle its record in one transaction.

        The record becomes synced only when no other unsynced operation targets
        it. When the server returns a version, it replaces the local row
        (re-keyed if the server assigned a different id).
        """
        collection = operation.collection
        record_id = operation.record_id

        try:
            with self.transaction() as conn:
                conn.execute(
                    "UPDATE sync_queue SET synced = 1, last_attempt = ? WHERE id = ?",
                    [self._now_iso(), operation.id],
                )
                if operation.kind is OperationKind.DELETE:
                    return

                outstanding = conn.execute(
                    """
                    SELECT COUNT(*) AS count FROM sync_queue
                    WHERE synced = 0 AND table_name = ? AND record_id = ?
                    """,
                    [collection, record_id],
                ).fetchone()["count"]
                if outstanding:
                    return

                local = self._read_record(conn, collection, record_id)
                if local is None:
                    # Deleted locally since the operation was queued
                    return

                if server_record is None:
                    self._write_record(conn, local.with_status(SyncStatus.SYNCED))
                    return

                settled = merge_local_only(server_record.with_status(SyncStatus.SYNCED), local)
                if settled.id != record_id:
                    conn.execute(f"DELETE FROM {collection} WHERE id = ?", [record_id])
                self._write_record(conn, settled)
        except sqlite3.Error as e:
            raise StorageWriteError(
                f"Error completing operation {operation.id}: {e}", table="sync_queue"
            ) from e

    async def purge_synced_operations(self, older_than: timedelta) -> int:
        """Compaction: physically delete confirmed operations older than a window."""
        cutoff = (self._clock() - older_than).isoformat(timespec="microseconds")
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    "DELETE FROM sync_queue WHERE synced = 1 AND enqueued_at < ?",
                    [cutoff],
                )
                return cursor.rowcount
        except sqlite3.Error as e:
            raise StorageWriteError(f"Error purging sync queue: {e}", table="sync_queue") from e

    # =========================================================================
    # ANALYTICS CACHE
    # =========================================================================

    async def cache_snapshot(self, blob: Dict[str, Any]) -> None:
        """Replace the cached analytics snapshot."""
        try:
            with self.transaction() as conn:
                conn.execute(
                    "INSERT OR REPLACE INTO analytics_cache (id, data, cached_at) VALUES (1, ?, ?)",
                    [json.dumps(_json_safe(blob)), self._now_iso()],
                )
        except sqlite3.Error as e:
            raise StorageWriteError(
                f"Error caching analytics: {e}", table="analytics_cache"
            ) from e

    async def get_cached_snapshot(self) -> Optional[Dict[str, Any]]:
        """Return the cached snapshot if it is younger than the freshness window, else None."""
        conn = self._conn()
        try:
            row = conn.execute("SELECT data, cached_at FROM analytics_cache WHERE id = 1").fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Error reading analytics cache: {e}", table="analytics_cache") from e

        if row is None:
            return None

        cached_at = datetime.fromisoformat(row["cached_at"])
        if self._clock() - cached_at >= self.snapshot_ttl:
            logger.debug("Cached analytics snapshot is stale")
            return None
        return json.loads(row["data"])
