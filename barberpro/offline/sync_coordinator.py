# =============================================================================
# barberpro/offline/sync_coordinator.py
# Queue Drain and Server Reconciliation
# =============================================================================
"""
SyncCoordinator - Owns the operation queue and local/remote reconciliation.

Features:
- Durable enqueue before any network attempt
- Single-flight drain in strict FIFO order, one remote call at a time
- Per-operation failure isolation (failed operations stay pending)
- Status-based reconciliation: remote wins for synced rows, local wins
  for pending/conflict rows, tombstones only for synced rows
- Explicit phase value (IDLE / DRAINING / RECONCILING) instead of flags
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Union
import logging

from barberpro.data.supabase_client import RemoteStoreClient
from barberpro.errors import (
    BarberProError,
    OfflineError,
    RemoteError,
    StorageError,
    handle_error,
)
from barberpro.logging import LogContext
from barberpro.models import (
    CreatePayload,
    DeletePayload,
    Operation,
    OperationKind,
    OperationPayload,
    RECORD_TYPES,
    RecordMixin,
    SyncStatus,
    UpdatePayload,
)
from barberpro.offline.local_store import LocalStore
from barberpro.offline.network_monitor import NetworkMonitor

logger = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    """What the coordinator is doing right now."""
    IDLE = "idle"
    DRAINING = "draining"
    RECONCILING = "reconciling"


@dataclass
class DrainReport:
    """Outcome of one drain call."""
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    failed_operation_ids: List[str] = field(default_factory=list)
    skipped: bool = False
    reason: Optional[str] = None

    @classmethod
    def skip(cls, reason: str) -> DrainReport:
        return cls(skipped=True, reason=reason)


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation call."""
    inserted: int = 0
    updated: int = 0
    kept_local: int = 0
    deleted: int = 0
    failed: int = 0
    collections: List[str] = field(default_factory=list)
    failed_collections: List[str] = field(default_factory=list)
    skipped: bool = False


class SyncCoordinator:
    """
    Sync state machine between the LocalStore and the RemoteStoreClient.

    Usage:
        coordinator = SyncCoordinator(store, remote, monitor)
        coordinator.start()
        await coordinator.queue_operation("customers", "create", {"name": "Alice", ...})
        await coordinator.reconcile_from_server()
    """

    OPERATION_RETENTION = timedelta(days=7)

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStoreClient,
        monitor: NetworkMonitor,
        collections: Optional[Iterable[str]] = None,
        operation_retention: Optional[timedelta] = None,
    ):
        """
        Args:
            store: Initialized LocalStore
            remote: Remote store client
            monitor: Reachability source
            collections: Collections pulled by reconcile (default: all registered)
            operation_retention: How long confirmed operations are kept before purge
        """
        self.store = store
        self.remote = remote
        self.monitor = monitor
        self.collections = list(collections or RECORD_TYPES.keys())
        self.operation_retention = operation_retention or self.OPERATION_RETENTION

        self._phase = SyncPhase.IDLE
        self._idle = asyncio.Event()
        self._idle.set()
        self._drain_requested = False
        self._tasks: Set[asyncio.Task] = set()
        self._callbacks: List[Callable[[SyncPhase], None]] = []
        self._started = False

        self.last_drain: Optional[DrainReport] = None
        self.last_reconcile: Optional[ReconcileReport] = None
        self.last_sync_success: Optional[datetime] = None

    # =========================================================================
    # STATUS
    # =========================================================================

    @property
    def state(self) -> SyncPhase:
        return self._phase

    def is_online(self) -> bool:
        return self.monitor.current_status()

    def is_syncing(self) -> bool:
        return self._phase is not SyncPhase.IDLE

    def _set_phase(self, phase: SyncPhase) -> None:
        self._phase = phase
        if phase is SyncPhase.IDLE:
            self._idle.set()
        else:
            self._idle.clear()
        self._notify_callbacks()

    def register_callback(self, callback: Callable[[SyncPhase], None]) -> None:
        """Register a callback for phase changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def _notify_callbacks(self) -> None:
        for callback in self._callbacks:
            try:
                callback(self._phase)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """Subscribe to the monitor's rising edge."""
        if self._started:
            return
        self.monitor.add_listener(self.on_reachable)
        self._started = True
        logger.info("SyncCoordinator started")

    async def stop(self) -> None:
        """Unsubscribe and cancel outstanding drain tasks."""
        self.monitor.remove_listener(self.on_reachable)
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._started = False
        logger.info("SyncCoordinator stopped")

    async def on_reachable(self) -> None:
        """Rising-edge listener: connectivity came back, try to drain."""
        logger.info("Connection restored, triggering sync")
        self._schedule_drain()

    def _schedule_drain(self) -> None:
        task = asyncio.get_running_loop().create_task(self.drain_pending_operations())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def join(self) -> None:
        """Wait for scheduled background drains (including ones they schedule)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # ENQUEUE
    # =========================================================================

    async def queue_operation(
        self,
        collection: str,
        kind: Union[str, OperationKind],
        payload: Union[Mapping[str, Any], OperationPayload, RecordMixin],
    ) -> Operation:
        """
        Durably queue a mutation and apply it optimistically to the local store.

        Returns once the operation is persisted; if online, a drain is
        scheduled in the background without being awaited.

        Raises:
            InvalidOperationError: unknown collection/kind or bad payload
            StorageWriteError: nothing was persisted; surface or retry
        """
        operation = Operation.new(collection, kind, payload)
        await self.store.enqueue_operation(operation, apply_locally=True)

        if self.is_online():
            self._schedule_drain()
        return operation

    # =========================================================================
    # DRAIN
    # =========================================================================

    async def drain_pending_operations(self) -> DrainReport:
        """
        Deliver pending operations in FIFO order.

        No-op when already draining, while reconciling (the drain is deferred
        until reconciliation ends) or when unreachable.
        """
        if self._phase is SyncPhase.DRAINING:
            self._drain_requested = True
            return DrainReport.skip("already draining")
        if self._phase is SyncPhase.RECONCILING:
            self._drain_requested = True
            return DrainReport.skip("reconciling")
        if not self.is_online():
            return DrainReport.skip("offline")

        self._set_phase(SyncPhase.DRAINING)
        report = DrainReport()
        try:
            with LogContext(logger, "Draining sync queue"):
                while True:
                    self._drain_requested = False
                    await self._drain_cycle(report)
                    if not self._drain_requested or not self.is_online():
                        break
                await self._compact()
        finally:
            self.last_drain = report
            if report.failed == 0:
                self.last_sync_success = datetime.now()
            self._set_phase(SyncPhase.IDLE)

        logger.info(f"Sync complete: {report.succeeded} success, {report.failed} failed")
        return report

    async def _drain_cycle(self, report: DrainReport) -> None:
        try:
            pending = await self.store.get_pending_operations()
        except StorageError as e:
            handle_error(e, context="Reading sync queue", log=logger)
            return

        for operation in pending:
            if not self.is_online():
                logger.info("Went offline mid-drain; remaining operations stay pending")
                break

            report.attempted += 1
            try:
                server_record = await self._dispatch(operation)
                await self.store.complete_operation(operation, server_record)
            except Exception as e:
                report.failed += 1
                report.failed_operation_ids.append(operation.id)
                handle_error(
                    e,
                    context=(
                        f"Syncing {operation.kind.value} {operation.collection}/"
                        f"{operation.record_id} ({operation.id})"
                    ),
                    level=logging.WARNING,
                    log=logger,
                )
                await self._record_failure(operation, e)
                continue
            report.succeeded += 1

    async def _dispatch(self, operation: Operation) -> Optional[RecordMixin]:
        """Send one operation to the remote store; returns the server record if any."""
        payload = operation.payload
        if isinstance(payload, CreatePayload):
            return await self.remote.create(payload.record)
        if isinstance(payload, UpdatePayload):
            return await self.remote.update(operation.collection, payload.record_id, payload.changes)
        if isinstance(payload, DeletePayload):
            await self.remote.remove(operation.collection, payload.record_id)
            return None
        raise TypeError(f"Unsupported payload type: {type(payload).__name__}")

    async def _record_failure(self, operation: Operation, error: Exception) -> None:
        try:
            await self.store.record_operation_failure(operation.id, str(error))
        except StorageError as e:
            handle_error(e, context=f"Recording failure of {operation.id}", log=logger)

    async def _compact(self) -> None:
        try:
            purged = await self.store.purge_synced_operations(self.operation_retention)
        except StorageError as e:
            handle_error(e, context="Purging confirmed operations", log=logger)
            return
        if purged:
            logger.debug(f"Purged {purged} confirmed operations")

    # =========================================================================
    # RECONCILE
    # =========================================================================

    async def reconcile_from_server(
        self, collections: Optional[Iterable[str]] = None
    ) -> ReconcileReport:
        """
        Pull the remote snapshot of each collection and merge it locally.

        Waits for a running drain to finish first; a second concurrent
        reconciliation is skipped.

        Raises:
            OfflineError: when unreachable; nothing is attempted
        """
        if not self.is_online():
            raise OfflineError()

        while self._phase is not SyncPhase.IDLE:
            if self._phase is SyncPhase.RECONCILING:
                logger.debug("Reconciliation already in progress")
                return ReconcileReport(skipped=True)
            await self._idle.wait()

        if not self.is_online():
            raise OfflineError()

        self._set_phase(SyncPhase.RECONCILING)
        report = ReconcileReport()
        try:
            with LogContext(logger, "Reconciling from server"):
                for collection in list(collections or self.collections):
                    await self._reconcile_collection(collection, report)
        finally:
            self.last_reconcile = report
            self._set_phase(SyncPhase.IDLE)
            if self._drain_requested and self.is_online():
                self._drain_requested = False
                self._schedule_drain()

        logger.info(
            f"Reconciled {report.collections}: {report.inserted} inserted, "
            f"{report.updated} updated, {report.kept_local} kept local, "
            f"{report.deleted} deleted, {report.failed} failed"
        )
        return report

    async def _reconcile_collection(self, collection: str, report: ReconcileReport) -> None:
        try:
            remote_records = await self.remote.fetch_all(collection)
        except RemoteError as e:
            # Without the full remote set, tombstones can't be decided either
            handle_error(e, context=f"Fetching {collection}", log=logger)
            report.failed_collections.append(collection)
            return

        report.collections.append(collection)
        remote_ids = set()
        for record in remote_records:
            remote_ids.add(record.id)
            try:
                outcome = await self.store.apply_remote_record(record)
            except BarberProError as e:
                report.failed += 1
                handle_error(e, context=f"Applying {collection}/{record.id}", log=logger)
                continue

            if outcome == "inserted":
                report.inserted += 1
            elif outcome == "updated":
                report.updated += 1
            else:
                report.kept_local += 1

        try:
            local_records = await self.store.get_all_records(collection)
        except StorageError as e:
            handle_error(e, context=f"Reading local {collection}", log=logger)
            report.failed_collections.append(collection)
            return

        for record in local_records:
            if record.id in remote_ids or record.sync_status is not SyncStatus.SYNCED:
                continue
            try:
                if await self.store.delete_if_synced(collection, record.id):
                    report.deleted += 1
            except StorageError as e:
                report.failed += 1
                handle_error(e, context=f"Deleting {collection}/{record.id}", log=logger)

    # =========================================================================
    # DISPLAY
    # =========================================================================

    async def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for display."""
        return {
            "phase": self._phase.value,
            "is_online": self.is_online(),
            "is_syncing": self.is_syncing(),
            "pending_count": await self.store.count_pending_operations(),
            "last_sync_success": (
                self.last_sync_success.isoformat() if self.last_sync_success else None
            ),
            "last_drain": {
                "attempted": self.last_drain.attempted,
                "succeeded": self.last_drain.succeeded,
                "failed": self.last_drain.failed,
            } if self.last_drain else None,
        }
