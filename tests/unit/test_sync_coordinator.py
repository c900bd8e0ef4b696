# =============================================================================
# tests/unit/test_sync_coordinator.py
# Unit Tests for SyncCoordinator
# =============================================================================

import asyncio

import pytest

from barberpro.data import RemoteStoreClient
from barberpro.errors import InvalidOperationError, OfflineError, StorageWriteError
from barberpro.models import Customer, SyncStatus
from barberpro.offline import SyncCoordinator, SyncPhase

from conftest import go_online, make_customer, make_supabase_client


async def queue_customers(coordinator, *names):
    ops = []
    for name in names:
        ops.append(
            await coordinator.queue_operation("customers", "create", {"name": name, "mobile": "555"})
        )
    return ops


class TestQueueOperation:
    """Test durable enqueue"""

    async def test_offline_enqueue_applies_locally_without_remote_call(
        self, coordinator, store, remote
    ):
        """Offline writes are visible locally as pending and nothing is sent"""
        op = await coordinator.queue_operation("customers", "create", {"name": "Alice", "mobile": "555"})

        [record] = await store.get_all_records("customers")
        assert record.id == op.record_id
        assert record.sync_status is SyncStatus.PENDING
        assert await store.count_pending_operations() == 1
        assert remote.calls == []

    async def test_online_enqueue_schedules_drain(self, coordinator, online, store, remote):
        op = await coordinator.queue_operation("customers", "create", {"name": "Alice", "mobile": "555"})
        await coordinator.join()

        assert remote.calls_of("create") == [("create", "customers", op.record_id)]
        assert (await store.get_record("customers", op.record_id)).sync_status is SyncStatus.SYNCED
        assert await store.count_pending_operations() == 0

    async def test_invalid_operation_persists_nothing(self, coordinator, store):
        with pytest.raises(InvalidOperationError):
            await coordinator.queue_operation("customers", "update", {"notes": "no id"})
        assert await store.count_pending_operations() == 0

    async def test_local_write_failure_persists_nothing(self, coordinator, store):
        """Queue append and optimistic write commit together or not at all"""
        store._conn().execute("DROP TABLE customers")

        with pytest.raises(StorageWriteError):
            await coordinator.queue_operation("customers", "create", {"name": "A", "mobile": "1"})
        assert await store.count_pending_operations() == 0


class TestDrain:
    """Test queue delivery"""

    async def test_drain_offline_is_noop(self, coordinator, remote):
        await queue_customers(coordinator, "A")
        report = await coordinator.drain_pending_operations()

        assert report.skipped
        assert report.reason == "offline"
        assert remote.calls == []

    async def test_drain_twice_sends_each_operation_once(self, coordinator, monitor, probe, remote):
        """Idempotent drain: no duplicate remote calls without new operations"""
        await queue_customers(coordinator, "A", "B")
        probe.reachable = True
        await monitor.check_now()
        await coordinator.join()

        first = len(remote.calls)
        report = await coordinator.drain_pending_operations()

        assert first == 2
        assert len(remote.calls) == 2
        assert report.attempted == 0

    async def test_fifo_delivery_order(self, coordinator, monitor, probe, remote, store):
        """Create, update, delete for one record reach the server in that order"""
        [create] = await queue_customers(coordinator, "Alice")
        await coordinator.queue_operation("customers", "update", {"id": create.record_id, "notes": "VIP"})
        other = await queue_customers(coordinator, "Bob")
        await coordinator.queue_operation("customers", "delete", {"id": create.record_id})

        await go_online(monitor, probe)
        await coordinator.join()

        assert remote.calls == [
            ("create", "customers", create.record_id),
            ("update", "customers", create.record_id),
            ("create", "customers", other[0].record_id),
            ("remove", "customers", create.record_id),
        ]
        assert list(remote.tables["customers"]) == [other[0].record_id]

    async def test_failure_isolation(self, coordinator, monitor, probe, remote, store):
        """A failing operation stays pending and does not block the ones after it"""
        a, b, c = await queue_customers(coordinator, "A", "B", "C")
        remote.fail_ids.add(b.record_id)

        await go_online(monitor, probe)
        await coordinator.join()

        assert set(remote.tables["customers"]) == {a.record_id, c.record_id}
        [pending] = await store.get_pending_operations()
        assert pending.id == b.id
        assert pending.attempts == 1
        assert "Injected failure" in pending.last_error
        assert coordinator.last_drain.failed_operation_ids == [b.id]
        assert (await store.get_record("customers", b.record_id)).sync_status is SyncStatus.PENDING
        assert coordinator.state is SyncPhase.IDLE

        remote.fail_ids.clear()
        report = await coordinator.drain_pending_operations()
        assert report.succeeded == 1
        assert await store.count_pending_operations() == 0

    async def test_replayed_create_is_harmless(self, coordinator, online, store, remote):
        """A create delivered before a crash is sent again without duplicating"""
        [op] = await queue_customers(coordinator, "Alice")
        await coordinator.join()
        # Simulate a crash between the remote call and the completion marker
        store._conn().execute("UPDATE sync_queue SET synced = 0 WHERE id = ?", [op.id])
        store._conn().commit()

        await coordinator.drain_pending_operations()
        assert len(remote.calls_of("create")) == 2
        assert len(remote.tables["customers"]) == 1

    async def test_concurrent_drain_is_single_flight(self, coordinator, online, remote):
        await queue_customers(coordinator, "A", "B")
        reports = await asyncio.gather(
            coordinator.drain_pending_operations(), coordinator.drain_pending_operations()
        )
        await coordinator.join()

        assert sum(1 for r in reports if r.skipped) >= 1
        assert len(remote.calls_of("create")) == 2

    async def test_phase_callbacks(self, coordinator, online):
        await coordinator.join()
        phases = []
        coordinator.register_callback(phases.append)
        await queue_customers(coordinator, "A")
        await coordinator.join()

        assert phases == [SyncPhase.DRAINING, SyncPhase.IDLE]

    async def test_confirmed_operations_are_purged_after_retention(
        self, coordinator, online, store, clock
    ):
        await queue_customers(coordinator, "A")
        await coordinator.join()
        count = "SELECT COUNT(*) AS n FROM sync_queue"
        assert store._conn().execute(count).fetchone()["n"] == 1

        clock.advance(days=8)
        await coordinator.drain_pending_operations()
        assert store._conn().execute(count).fetchone()["n"] == 0


class TestReconcile:
    """Test server snapshot reconciliation"""

    async def test_offline_reconcile_raises(self, coordinator, remote):
        with pytest.raises(OfflineError):
            await coordinator.reconcile_from_server()
        assert remote.calls == []

    async def test_remote_records_inserted_and_synced_overwritten(
        self, coordinator, online, store, remote
    ):
        fresh = make_customer("Fresh")
        remote.seed(fresh)
        stale = make_customer("Old name").with_status(SyncStatus.SYNCED)
        await store.upsert_record(stale)
        remote.seed(Customer.from_payload({**stale.to_payload(), "name": "New name"}))

        report = await coordinator.reconcile_from_server(["customers"])

        assert report.inserted == 1 and report.updated == 1
        assert (await store.get_record("customers", fresh.id)).sync_status is SyncStatus.SYNCED
        assert (await store.get_record("customers", stale.id)).name == "New name"

    async def test_pending_local_changes_survive(self, coordinator, store, remote, monitor, probe):
        """Reconciliation never overwrites a pending record"""
        server = make_customer("Server name")
        remote.seed(server)
        await store.upsert_record(server.with_status(SyncStatus.SYNCED))
        await coordinator.queue_operation("customers", "update", {"id": server.id, "name": "Local name"})

        # Online without the rising-edge drain, so the update stays pending
        await coordinator.stop()
        await go_online(monitor, probe)
        report = await coordinator.reconcile_from_server(["customers"])

        record = await store.get_record("customers", server.id)
        assert report.kept_local == 1
        assert record.name == "Local name"
        assert record.sync_status is SyncStatus.PENDING

    async def test_queued_delete_is_not_brought_back(
        self, coordinator, store, remote, monitor, probe
    ):
        """A record deleted offline stays deleted while the server still has it"""
        bob = make_customer("Bob").with_status(SyncStatus.SYNCED)
        await store.upsert_record(bob)
        remote.seed(bob)
        await coordinator.queue_operation("customers", "delete", {"id": bob.id})

        await coordinator.stop()
        await go_online(monitor, probe)
        report = await coordinator.reconcile_from_server(["customers"])

        assert report.kept_local == 1
        assert report.inserted == 0
        assert await store.get_record("customers", bob.id) is None
        assert await store.count_pending_operations() == 1

        drain = await coordinator.drain_pending_operations()
        assert drain.succeeded == 1
        assert bob.id not in remote.tables["customers"]
        assert await store.get_record("customers", bob.id) is None

    async def test_tombstones_only_remove_synced_records(
        self, coordinator, store, remote, monitor, probe
    ):
        """Synced rows missing remotely go away; pending ones stay"""
        gone = make_customer("Deleted elsewhere").with_status(SyncStatus.SYNCED)
        await store.upsert_record(gone)
        unsent = await coordinator.queue_operation("customers", "create", {"name": "New", "mobile": "1"})

        await coordinator.stop()
        await go_online(monitor, probe)
        report = await coordinator.reconcile_from_server(["customers"])

        assert report.deleted == 1
        assert await store.get_record("customers", gone.id) is None
        assert await store.get_record("customers", unsent.record_id) is not None

    async def test_failed_fetch_skips_collection_and_its_tombstones(
        self, coordinator, online, store, remote
    ):
        synced = make_customer("Keep me").with_status(SyncStatus.SYNCED)
        await store.upsert_record(synced)
        remote.fail_fetch.add("customers")

        report = await coordinator.reconcile_from_server()

        assert report.failed_collections == ["customers"]
        assert "services" in report.collections
        assert await store.get_record("customers", synced.id) is not None

    async def test_drain_requested_during_reconcile_runs_afterwards(
        self, store, remote, monitor, probe
    ):
        coordinator = SyncCoordinator(store, remote, monitor)
        await coordinator.queue_operation("customers", "create", {"name": "A", "mobile": "1"})
        await go_online(monitor, probe)

        gate = asyncio.Event()
        original_fetch = remote.fetch_all

        async def slow_fetch(collection):
            await gate.wait()
            return await original_fetch(collection)

        remote.fetch_all = slow_fetch
        reconcile = asyncio.create_task(coordinator.reconcile_from_server(["customers"]))
        await asyncio.sleep(0)
        assert coordinator.state is SyncPhase.RECONCILING

        deferred = await coordinator.drain_pending_operations()
        assert deferred.skipped and deferred.reason == "reconciling"

        gate.set()
        await reconcile
        await coordinator.join()

        assert len(remote.calls_of("create")) == 1
        assert await store.count_pending_operations() == 0
        await coordinator.stop()

    async def test_second_concurrent_reconcile_is_skipped(self, store, remote, monitor, probe):
        coordinator = SyncCoordinator(store, remote, monitor)
        await go_online(monitor, probe)

        gate = asyncio.Event()
        original_fetch = remote.fetch_all

        async def slow_fetch(collection):
            await gate.wait()
            return await original_fetch(collection)

        remote.fetch_all = slow_fetch
        first = asyncio.create_task(coordinator.reconcile_from_server(["customers"]))
        await asyncio.sleep(0)

        second = await coordinator.reconcile_from_server(["customers"])
        gate.set()
        await first

        assert second.skipped
        assert first.result().skipped is False


class TestRemoteFieldBoundary:
    """Drain through RemoteStoreClient over a mocked Supabase table"""

    SERVER_ROW = {
        "id": "c1",
        "name": "Alice",
        "mobile": "555",
        "visit_date": "2024-05-01",
        "services": ["Haircut"],
        "payment_amount": 20.0,
        "created_at": "2024-05-01T10:00:00+00:00",
        "updated_at": None,
    }

    async def seeded_coordinator(self, store, monitor, *responses):
        local = make_customer("Alice", id="c1", photoUri="file://alice.jpg")
        await store.upsert_record(local.with_status(SyncStatus.SYNCED))
        client, table = make_supabase_client(*responses)
        coordinator = SyncCoordinator(store, RemoteStoreClient(client), monitor)
        return coordinator, table

    @pytest.mark.parametrize("key", ["paymentAmount", "payment_amount"])
    async def test_update_reaches_server_for_either_spelling(self, store, monitor, probe, key):
        coordinator, table = await self.seeded_coordinator(
            store, monitor, [{**self.SERVER_ROW, "payment_amount": 99.0}]
        )
        await coordinator.queue_operation("customers", "update", {"id": "c1", key: 99.0})
        assert (await store.get_record("customers", "c1")).payment_amount == 99.0

        await go_online(monitor, probe)
        report = await coordinator.drain_pending_operations()

        assert report.succeeded == 1
        table.update.assert_called_once_with({"payment_amount": 99.0})
        record = await store.get_record("customers", "c1")
        assert record.payment_amount == 99.0
        assert record.photo_uri == "file://alice.jpg"
        assert record.sync_status is SyncStatus.SYNCED

    async def test_local_only_update_settles_without_request(self, store, monitor, probe):
        coordinator, table = await self.seeded_coordinator(store, monitor)
        await coordinator.queue_operation(
            "customers", "update", {"id": "c1", "photoUri": "file://new.jpg"}
        )

        await go_online(monitor, probe)
        report = await coordinator.drain_pending_operations()

        assert report.succeeded == 1
        table.update.assert_not_called()
        record = await store.get_record("customers", "c1")
        assert record.photo_uri == "file://new.jpg"
        assert record.sync_status is SyncStatus.SYNCED
        assert await store.count_pending_operations() == 0


class TestStatusDisplay:
    """Test the status summary"""

    async def test_status_after_offline_queue(self, coordinator):
        await queue_customers(coordinator, "A", "B")
        status = await coordinator.get_status_display()

        assert status["phase"] == "idle"
        assert status["is_online"] is False
        assert status["pending_count"] == 2
        assert status["last_drain"] is None
