# =============================================================================
# barberpro/offline/data_service.py
# Offline Data Service - Single API for Online/Offline Operations
# =============================================================================
"""
OfflineDataService - The consumer-facing API of the sync core.

Built once at process start and passed to whatever needs it:

    service = await OfflineDataService.create(load_settings())
    await service.queue_operation("customers", "create", {"name": "Alice", "mobile": "555"})
    customers = await service.get_all_records("customers")
    print(await service.get_status_display())
    await service.aclose()

Reads always come from the LocalStore; writes are queued and drained by the
SyncCoordinator whenever the NetworkMonitor reports the backend reachable.
"""

from __future__ import annotations
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
import logging

from barberpro.config import Settings
from barberpro.data.supabase_client import RemoteStoreClient, create_remote_client
from barberpro.models import Operation, OperationKind, OperationPayload, RecordMixin
from barberpro.offline.local_store import LocalStore
from barberpro.offline.network_monitor import NetworkMonitor, Probe
from barberpro.offline.sync_coordinator import DrainReport, ReconcileReport, SyncCoordinator
from barberpro.services.analytics_service import AnalyticsService

logger = logging.getLogger(__name__)


class OfflineDataService:
    """
    Wires LocalStore, RemoteStoreClient, NetworkMonitor, SyncCoordinator and
    AnalyticsService together and owns their lifecycle.
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStoreClient,
        monitor: NetworkMonitor,
        coordinator: SyncCoordinator,
        analytics: AnalyticsService,
    ):
        self.store = store
        self.remote = remote
        self.monitor = monitor
        self.coordinator = coordinator
        self.analytics = analytics
        self._closed = False

    @classmethod
    async def create(
        cls,
        settings: Settings,
        remote: Optional[RemoteStoreClient] = None,
        probe: Optional[Probe] = None,
        start_monitoring: bool = True,
    ) -> OfflineDataService:
        """
        Build and start the service.

        Args:
            settings: Loaded settings
            remote: Remote client to use instead of one built from settings
            probe: Reachability probe to use instead of the TCP probe
            start_monitoring: Start the background reachability poll

        Raises:
            StorageInitError: the local database cannot be opened
            ConfigurationError: no remote given and credentials are missing
        """
        store = LocalStore(settings.db_path, snapshot_ttl=timedelta(seconds=settings.snapshot_ttl))
        await store.initialize()

        if remote is None:
            try:
                remote = RemoteStoreClient(await create_remote_client(settings))
            except Exception:
                await store.close()
                raise

        monitor = NetworkMonitor(
            probe=probe,
            poll_interval=settings.poll_interval,
            probe_timeout=settings.probe_timeout,
            supabase_url=settings.supabase_url,
        )
        coordinator = SyncCoordinator(
            store,
            remote,
            monitor,
            operation_retention=timedelta(days=settings.operation_retention_days),
        )
        analytics = AnalyticsService(store, remote, monitor)

        service = cls(store, remote, monitor, coordinator, analytics)
        coordinator.start()
        if start_monitoring:
            monitor.start()

        logger.info(f"OfflineDataService initialized (db: {settings.db_path})")
        return service

    async def aclose(self) -> None:
        """Stop background work and release the database and HTTP sessions."""
        if self._closed:
            return
        self._closed = True
        await self.monitor.stop()
        await self.coordinator.stop()
        await self.remote.aclose()
        await self.store.close()
        logger.info("OfflineDataService closed")

    async def __aenter__(self) -> OfflineDataService:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    def is_online(self) -> bool:
        return self.coordinator.is_online()

    def is_syncing(self) -> bool:
        return self.coordinator.is_syncing()

    async def pending_sync_count(self) -> int:
        return await self.store.count_pending_operations()

    # =========================================================================
    # DATA OPERATIONS
    # =========================================================================

    async def queue_operation(
        self,
        collection: str,
        kind: Union[str, OperationKind],
        payload: Union[Mapping[str, Any], OperationPayload, RecordMixin],
    ) -> Operation:
        """Queue a create/update/delete; the local copy reflects it immediately."""
        return await self.coordinator.queue_operation(collection, kind, payload)

    async def get_all_records(self, collection: str) -> List[RecordMixin]:
        """All local records of a collection, newest first."""
        return await self.store.get_all_records(collection)

    async def get_record(self, collection: str, record_id: str) -> Optional[RecordMixin]:
        return await self.store.get_record(collection, record_id)

    # =========================================================================
    # SYNC
    # =========================================================================

    async def sync_now(self) -> DrainReport:
        """Drain pending operations now (no-op offline or while syncing)."""
        return await self.coordinator.drain_pending_operations()

    async def wait_for_sync(self) -> Optional[DrainReport]:
        """
        Wait for background drains started by a reconnect or a queued write.

        Returns:
            The report of the most recent drain, or None if none has run
        """
        await self.coordinator.join()
        return self.coordinator.last_drain

    async def reconcile_from_server(
        self, collections: Optional[Iterable[str]] = None
    ) -> ReconcileReport:
        return await self.coordinator.reconcile_from_server(collections)

    async def refresh(self) -> Tuple[ReconcileReport, DrainReport]:
        """
        Pull-to-refresh: reconcile from the server, then push pending operations.

        Raises:
            OfflineError: when unreachable
        """
        reconcile = await self.coordinator.reconcile_from_server()
        drain = await self.coordinator.drain_pending_operations()
        return reconcile, drain

    # =========================================================================
    # ANALYTICS & STATUS
    # =========================================================================

    async def get_analytics(self, force_refresh: bool = False) -> Dict[str, Any]:
        return await self.analytics.get_analytics(force_refresh=force_refresh)

    async def get_status_display(self) -> Dict[str, Any]:
        """Combined connection and sync status for display."""
        status = await self.coordinator.get_status_display()
        status["connection"] = self.monitor.get_status_display()
        return status
