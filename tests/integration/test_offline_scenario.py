# =============================================================================
# tests/integration/test_offline_scenario.py
# End-to-End Offline-First Scenarios
# =============================================================================
"""
Walk-in customer recorded with no connectivity, delivered on reconnect, and
surviving an app restart in between.
"""

import pytest

from barberpro.config import Settings
from barberpro.models import SyncStatus
from barberpro.offline import OfflineDataService

from conftest import ControllableProbe, FakeRemoteStore, go_offline, go_online


@pytest.fixture
def settings(db_path):
    return Settings(db_path=db_path)


async def open_service(settings, remote, probe):
    return await OfflineDataService.create(settings, remote=remote, probe=probe, start_monitoring=False)


class TestOfflineScenario:
    """Offline create -> reconnect -> synced"""

    async def test_alice_walk_in_while_offline(self, settings):
        remote = FakeRemoteStore()
        probe = ControllableProbe(reachable=False)
        service = await open_service(settings, remote, probe)
        await service.monitor.check_now()

        op = await service.queue_operation(
            "customers",
            "create",
            {"name": "Alice", "mobile": "555-1234", "services": ["Haircut"], "paymentAmount": 25},
        )

        # Visible immediately, marked pending, nothing sent
        [alice] = await service.get_all_records("customers")
        assert alice.name == "Alice"
        assert alice.sync_status is SyncStatus.PENDING
        assert await service.pending_sync_count() == 1
        assert remote.calls == []

        # Connectivity returns: the rising edge drains the queue
        await go_online(service.monitor, probe)
        await service.coordinator.join()

        assert remote.calls == [("create", "customers", op.record_id)]
        assert remote.tables["customers"][op.record_id]["paymentAmount"] == 25.0
        [alice] = await service.get_all_records("customers")
        assert alice.sync_status is SyncStatus.SYNCED
        assert await service.pending_sync_count() == 0

        # Pull-to-refresh leaves the synced record in place
        reconcile, _ = await service.refresh()
        assert reconcile.updated == 1
        assert reconcile.deleted == 0

        await service.aclose()

    async def test_queue_survives_restart_before_reconnect(self, settings):
        remote = FakeRemoteStore()
        probe = ControllableProbe(reachable=False)

        first = await open_service(settings, remote, probe)
        await first.queue_operation("customers", "create", {"name": "Bob", "mobile": "555-9876"})
        await first.aclose()

        second = await open_service(settings, remote, probe)
        assert await second.pending_sync_count() == 1
        [bob] = await second.get_all_records("customers")
        assert bob.sync_status is SyncStatus.PENDING

        await go_online(second.monitor, probe)
        await second.coordinator.join()

        assert list(remote.tables["customers"]) == [bob.id]
        assert await second.pending_sync_count() == 0
        await second.aclose()

    async def test_edits_made_offline_win_over_stale_server_copy(self, settings):
        remote = FakeRemoteStore()
        probe = ControllableProbe(reachable=True)
        service = await open_service(settings, remote, probe)
        await service.monitor.check_now()

        op = await service.queue_operation("customers", "create", {"name": "Carol", "mobile": "1"})
        await service.coordinator.join()

        await go_offline(service.monitor, probe)
        await service.queue_operation("customers", "update", {"id": op.record_id, "notes": "Prefers fade"})

        # Reconnect without delivering yet: reconcile must not clobber the edit
        await service.coordinator.stop()
        await go_online(service.monitor, probe)
        report = await service.reconcile_from_server(["customers"])
        carol = await service.get_record("customers", op.record_id)

        assert report.kept_local == 1
        assert carol.notes == "Prefers fade"
        assert carol.sync_status is SyncStatus.PENDING

        drain = await service.sync_now()
        assert drain.succeeded == 1
        assert remote.tables["customers"][op.record_id]["notes"] == "Prefers fade"
        assert (await service.get_record("customers", op.record_id)).sync_status is SyncStatus.SYNCED

        await service.aclose()
