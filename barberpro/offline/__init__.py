# =============================================================================
# barberpro/offline/__init__.py
# Offline-First Sync Core for BarberPro
# =============================================================================
"""
Offline-First Sync Core

Every mutation lands in local SQLite first and is queued; the queue is
delivered to Supabase whenever the backend is reachable.

Architecture:
------------
    OfflineDataService  (single API, built once at startup)
            |
     +------+---------------+
     |                      |
  NetworkMonitor       SyncCoordinator
  (reachability)       (drain / reconcile)
                            |
                 +----------+----------+
                 |                     |
            LocalStore         RemoteStoreClient
            (SQLite)              (Supabase)

Usage:
------
from barberpro.offline import OfflineDataService

service = await OfflineDataService.create(settings)
await service.queue_operation("customers", "create", {"name": "Alice", "mobile": "555"})
print(service.is_online())
print(await service.pending_sync_count())
"""

from barberpro.offline.local_store import LocalStore

from barberpro.offline.network_monitor import (
    NetworkMonitor,
    NetworkState,
    tcp_probe,
    probe_targets,
)

from barberpro.offline.sync_coordinator import (
    SyncCoordinator,
    SyncPhase,
    DrainReport,
    ReconcileReport,
)

from barberpro.offline.data_service import OfflineDataService

__all__ = [
    "LocalStore",
    "NetworkMonitor",
    "NetworkState",
    "tcp_probe",
    "probe_targets",
    "SyncCoordinator",
    "SyncPhase",
    "DrainReport",
    "ReconcileReport",
    "OfflineDataService",
]
