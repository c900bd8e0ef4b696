# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import asyncio

import pytest
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple
from unittest.mock import AsyncMock, MagicMock

from barberpro.data import field_map_for
from barberpro.errors import RemoteError
from barberpro.models import RECORD_TYPES, Customer, RecordMixin, SyncStatus
from barberpro.models.records import to_camel, utc_now_iso
from barberpro.offline import LocalStore, NetworkMonitor, SyncCoordinator


# =============================================================================
# TEST DOUBLES
# =============================================================================

class FakeClock:
    """Settable UTC clock for cache freshness and purge tests."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class ControllableProbe:
    """Reachability probe whose answer the test decides."""

    def __init__(self, reachable: bool = False):
        self.reachable = reachable
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return self.reachable


class FakeRemoteStore:
    """
    In-memory stand-in for RemoteStoreClient.

    Rows are kept as camelCase payloads. Writes pass through the collection's
    field map both ways, so a key the real client would not send never reaches
    a row. Every call is appended to ``calls`` as (method, collection,
    record_id); every update body actually sent goes to ``update_bodies``.
    """

    def __init__(self):
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in RECORD_TYPES}
        self.calls: List[Tuple[str, str, Optional[str]]] = []
        self.update_bodies: List[Dict[str, Any]] = []
        self.fail_ids: Set[str] = set()
        self.fail_fetch: Set[str] = set()
        self.closed = False

    def _strip(self, record: RecordMixin) -> Dict[str, Any]:
        payload = record.to_payload()
        for name in record.LOCAL_ONLY_FIELDS:
            payload.pop(to_camel(name), None)
        payload.pop("syncStatus", None)
        return payload

    def _record(self, collection: str, payload: Mapping[str, Any]) -> RecordMixin:
        return RECORD_TYPES[collection].from_payload(payload, sync_status=SyncStatus.SYNCED)

    def seed(self, record: RecordMixin) -> None:
        """Put a row on the server without recording a call."""
        self.tables[record.COLLECTION][record.id] = self._strip(record)

    def _maybe_fail(self, record_id: str) -> None:
        if record_id in self.fail_ids:
            raise RemoteError(f"Injected failure for {record_id}", cause=ConnectionError("boom"))

    async def fetch_all(self, collection: str) -> List[RecordMixin]:
        await asyncio.sleep(0)
        self.calls.append(("fetch_all", collection, None))
        if collection in self.fail_fetch:
            raise RemoteError(f"Injected fetch failure for {collection}", table=collection)
        return [self._record(collection, row) for row in self.tables[collection].values()]

    async def create(self, record: RecordMixin) -> RecordMixin:
        await asyncio.sleep(0)
        self.calls.append(("create", record.COLLECTION, record.id))
        self._maybe_fail(record.id)
        field_map = field_map_for(record.COLLECTION)
        row = field_map.to_local(field_map.to_remote(record.to_payload()))
        # Server-side defaults for the read-only timestamps
        row["createdAt"] = record.created_at
        row["updatedAt"] = utc_now_iso()
        self.tables[record.COLLECTION][record.id] = row
        return self._record(record.COLLECTION, row)

    async def update(
        self, collection: str, record_id: str, changes: Mapping[str, Any]
    ) -> Optional[RecordMixin]:
        await asyncio.sleep(0)
        self.calls.append(("update", collection, record_id))
        self._maybe_fail(record_id)
        field_map = field_map_for(collection)
        body = field_map.to_remote({k: v for k, v in changes.items() if k != "id"})
        if not body:
            return None
        self.update_bodies.append(body)
        row = self.tables[collection].get(record_id)
        if row is None:
            raise RemoteError(f"Update matched no {collection} row with id {record_id}")
        row.update(field_map.to_local(body))
        row["updatedAt"] = utc_now_iso()
        return self._record(collection, row)

    async def remove(self, collection: str, record_id: str) -> None:
        await asyncio.sleep(0)
        self.calls.append(("remove", collection, record_id))
        self._maybe_fail(record_id)
        self.tables[collection].pop(record_id, None)

    async def aclose(self) -> None:
        self.closed = True

    def calls_of(self, method: str) -> List[Tuple[str, str, Optional[str]]]:
        return [call for call in self.calls if call[0] == method]


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "local_data" / "barberpro.db"


@pytest.fixture
async def store(db_path, clock):
    """Initialized LocalStore on a temporary file"""
    local_store = LocalStore(db_path, clock=clock)
    await local_store.initialize()
    yield local_store
    await local_store.close()


@pytest.fixture
def remote():
    return FakeRemoteStore()


@pytest.fixture
def probe():
    return ControllableProbe(reachable=False)


@pytest.fixture
def monitor(probe):
    return NetworkMonitor(probe=probe, poll_interval=0.01)


@pytest.fixture
async def coordinator(store, remote, monitor):
    """Started SyncCoordinator; the monitor has not been checked yet (offline)."""
    sync = SyncCoordinator(store, remote, monitor)
    sync.start()
    yield sync
    await sync.stop()


@pytest.fixture
async def online(monitor, probe):
    """Bring the monitor online (fires the rising edge)."""
    probe.reachable = True
    await monitor.check_now()
    return monitor


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def make_customer(name: str = "Alice", **overrides) -> Customer:
    payload = {"name": name, "mobile": "555-0100", "services": ["Haircut"], "paymentAmount": 20.0}
    payload.update(overrides)
    return Customer.from_payload(payload)


async def go_online(monitor: NetworkMonitor, probe: ControllableProbe) -> None:
    probe.reachable = True
    await monitor.check_now()


async def go_offline(monitor: NetworkMonitor, probe: ControllableProbe) -> None:
    probe.reachable = False
    await monitor.check_now()


def make_supabase_client(*responses):
    """Mock async Supabase client whose execute() returns the given data lists in turn."""
    client = MagicMock()
    table = client.table.return_value
    # Every builder method returns the same builder so any chain ends in execute()
    for method in ("select", "order", "range", "upsert", "update", "delete", "eq"):
        getattr(table, method).return_value = table
    table.execute = AsyncMock(side_effect=[MagicMock(data=data) for data in responses])
    return client, table
