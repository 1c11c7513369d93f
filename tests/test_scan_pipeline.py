"""Tests for single-serial scans, fleet scans and the automated sweep."""

import asyncio

import pytest

from ncc_monitor.db.models import SearchType
from ncc_monitor.detect.classifier import classify
from ncc_monitor.detect.recorder import MAX_TITLE_LENGTH, MAX_URL_LENGTH, DetectionRecorder
from ncc_monitor.errors import (
    NotFoundError,
    PersistenceError,
    SearchUnavailableError,
    ValidationError,
)
from ncc_monitor.monitor import MonitorService
from ncc_monitor.search.client import RawResult
from ncc_monitor.search.service import SearchService
from ncc_monitor.storage.memory import MemoryStorage
from ncc_monitor.worker.scan_lock import LocalScanLock
from ncc_monitor.worker.scanner import scan_log_type

from tests.conftest import FakeSearchClient, RecordingNotifier, hit


@pytest.mark.asyncio
async def test_end_to_end_all_scan(monitor, storage, search_client, notifier):
    search_client.marketplace = [
        hit("https://shopee.tw/x-i.1.2", "X", "..."),
        hit("https://other.com/y", "Y", "..."),
    ]
    search_client.general = [hit("https://other.com/y", "Y", "...")]
    serial = await monitor.create_serial(1, "Router", "CCAH21LP1234T5")

    result = await monitor.scan_one(serial.id, 1, "all")

    assert result.total_results == 3
    assert result.new_detections == 2
    assert result.marketplace_detections == 1

    detections = await storage.list_detections_by_serial(serial.id)
    assert len(detections) == 2
    shop = next(d for d in detections if d.is_marketplace)
    assert (shop.shop_id, shop.product_id) == ("1", "2")
    assert shop.source_type == "marketplace"
    assert all(d.status == "new" for d in detections)

    logs = await storage.recent_scan_logs(serial.id)
    assert len(logs) == 1
    assert logs[0].scan_type == "manual"
    assert logs[0].results_count == 3
    assert logs[0].new_detections == 2
    assert logs[0].marketplace_detections == 1

    assert len(notifier.sent) == 1
    assert "CCAH21LP1234T5" in notifier.sent[0].content

    refreshed = await storage.get_serial(serial.id)
    assert refreshed.last_scan_at is not None
    assert refreshed.last_marketplace_scan_at is not None


@pytest.mark.asyncio
async def test_rescan_is_idempotent(monitor, storage, search_client, notifier):
    search_client.general = [hit("https://blog.example.com/a"), hit("https://blog.example.com/b")]
    serial = await monitor.create_serial(1, "Router", "SER1")

    first = await monitor.scan_one(serial.id, 1, SearchType.GENERAL)
    second = await monitor.scan_one(serial.id, 1, SearchType.GENERAL)

    assert first.new_detections == 2
    assert second.new_detections == 0
    assert second.total_results == 2
    assert len(await storage.list_detections_by_serial(serial.id)) == 2
    assert len(await storage.recent_scan_logs(serial.id)) == 2
    # Nothing new the second time, so still one notification
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_duplicate_url_in_one_batch(monitor, storage, search_client):
    search_client.general = [hit("https://blog.example.com/a"), hit("https://blog.example.com/a")]
    serial = await monitor.create_serial(1, "Router", "SER1")

    result = await monitor.scan_one(serial.id, 1, SearchType.GENERAL)

    assert result.total_results == 2
    assert result.new_detections == 1
    assert len(await storage.list_detections_by_serial(serial.id)) == 1


@pytest.mark.asyncio
async def test_urls_are_compared_exactly(monitor, search_client):
    search_client.general = [hit("https://blog.example.com/a"), hit("https://blog.example.com/a/")]
    serial = await monitor.create_serial(1, "Router", "SER1")

    result = await monitor.scan_one(serial.id, 1, SearchType.GENERAL)
    assert result.new_detections == 2


@pytest.mark.asyncio
async def test_zero_results(monitor, storage, notifier):
    serial = await monitor.create_serial(1, "Router", "SER1")

    result = await monitor.scan_one(serial.id, 1)

    assert result.total_results == 0
    assert result.new_detections == 0
    logs = await storage.recent_scan_logs(serial.id)
    assert len(logs) == 1
    assert logs[0].results_count == 0
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_marketplace_scan_logs_marketplace_type(monitor, storage, search_client, notifier):
    search_client.marketplace = [hit("https://shopee.tw/seller")]
    serial = await monitor.create_serial(1, "Router", "SER1")

    result = await monitor.scan_one(serial.id, 1, "marketplace")

    assert result.marketplace_detections == 1
    logs = await storage.recent_scan_logs(serial.id)
    assert logs[0].scan_type == "marketplace"
    refreshed = await storage.get_serial(serial.id)
    assert refreshed.last_marketplace_scan_at is not None
    assert refreshed.last_scan_at is None
    assert notifier.sent[0].title == "Shopee listing alert"


@pytest.mark.asyncio
async def test_search_failure_writes_no_log(monitor, storage, search_client):
    serial = await monitor.create_serial(1, "Router", "SER1")
    search_client.fail_for = {"SER1"}

    with pytest.raises(SearchUnavailableError):
        await monitor.scan_one(serial.id, 1)

    assert await storage.recent_scan_logs(serial.id) == []
    assert (await storage.get_serial(serial.id)).last_scan_at is None


@pytest.mark.asyncio
async def test_scan_unknown_or_foreign_serial(monitor):
    serial = await monitor.create_serial(1, "Router", "SER1")
    with pytest.raises(NotFoundError):
        await monitor.scan_one(serial.id, 2)
    with pytest.raises(NotFoundError):
        await monitor.scan_one(999, 1)
    with pytest.raises(ValidationError):
        await monitor.scan_one(serial.id, 1, "everything")


@pytest.mark.asyncio
async def test_counters_with_failed_results(monitor, storage, search_client):
    search_client.general = [
        hit("https://blog.example.com/" + "x" * MAX_URL_LENGTH),
        hit("https://blog.example.com/ok"),
    ]
    serial = await monitor.create_serial(1, "Router", "SER1")

    result = await monitor.scan_one(serial.id, 1, SearchType.GENERAL)

    assert result.total_results == 2
    assert result.new_detections == 1
    assert result.failed_results == 1
    assert result.marketplace_detections <= result.new_detections <= result.total_results


class TestFleetScan:
    @pytest.mark.asyncio
    async def test_partial_failure(self, monitor, storage, search_client, notifier):
        search_client.general = [hit("https://blog.example.com/a")]
        first = await monitor.create_serial(1, "First", "FIRST1")
        bad = await monitor.create_serial(1, "Bad", "BAD1")
        third = await monitor.create_serial(1, "Third", "THIRD1")
        await monitor.create_serial(1, "Paused", "PAUSE1", is_active=False)
        search_client.fail_for = {"BAD1"}

        fleet = await monitor.scan_all_for_user(1, "general")

        assert fleet.scanned_count == 2
        assert fleet.total_new == 2
        assert [o.serial_id for o in fleet.results] == [first.id, bad.id, third.id]
        assert [o.serial_id for o in fleet.failed] == [bad.id]
        assert fleet.results[1].error
        assert len(await storage.list_detections_by_serial(third.id)) == 1
        assert await storage.recent_scan_logs(bad.id) == []

        assert len(notifier.sent) == 1
        content = notifier.sent[0].content
        assert "First: 1 new" in content
        assert "Third: 1 new" in content
        assert "Scan failed for: Bad" in content

    @pytest.mark.asyncio
    async def test_no_new_detections_no_notification(self, monitor, notifier):
        await monitor.create_serial(1, "A", "AAA")
        fleet = await monitor.scan_all_for_user(1)
        assert fleet.scanned_count == 1
        assert fleet.total_new == 0
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_no_active_serials(self, monitor):
        fleet = await monitor.scan_all_for_user(1)
        assert fleet.scanned_count == 0
        assert fleet.results == []

    @pytest.mark.asyncio
    async def test_sweep_notifies_each_owner_once(self, monitor, storage, search_client, notifier):
        search_client.general = [hit("https://blog.example.com/a")]
        a = await monitor.create_serial(1, "A", "AAA")
        await monitor.create_serial(1, "B", "BBB")
        c = await monitor.create_serial(2, "C", "CCC")

        summary = await monitor.sweep("general")

        assert summary.owners == 2
        assert summary.scanned_count == 3
        assert summary.total_new == 3
        assert summary.failed_count == 0
        assert len(notifier.sent) == 2
        assert (await storage.recent_scan_logs(a.id))[0].scan_type == "automatic"
        assert (await storage.recent_scan_logs(c.id))[0].scan_type == "automatic"


class TestDetectionReview:
    @pytest.mark.asyncio
    async def test_status_transition_freedom(self, monitor, storage, search_client):
        search_client.general = [hit("https://blog.example.com/a")]
        serial = await monitor.create_serial(1, "Router", "SER1")
        await monitor.scan_one(serial.id, 1, "general")
        detection = (await monitor.list_detections(1))[0]

        for status in ("processed", "ignored", "new", "ignored", "processed", "new"):
            await monitor.update_detection_status(detection.id, status, owner_id=1)
            assert (await storage.get_detection(detection.id)).status == status

    @pytest.mark.asyncio
    async def test_status_update_checks_owner(self, monitor, search_client):
        search_client.general = [hit("https://blog.example.com/a")]
        serial = await monitor.create_serial(1, "Router", "SER1")
        await monitor.scan_one(serial.id, 1, "general")
        detection = (await monitor.list_detections(1))[0]

        with pytest.raises(NotFoundError):
            await monitor.update_detection_status(detection.id, "ignored", owner_id=2)
        with pytest.raises(NotFoundError):
            await monitor.update_detection_status(999, "ignored")
        with pytest.raises(ValidationError):
            await monitor.update_detection_status(detection.id, "archived")


class TestSerialValidation:
    @pytest.mark.asyncio
    async def test_serial_number_normalized(self, monitor):
        serial = await monitor.create_serial(1, " Router ", "  ccah21lp1234t5 ")
        assert serial.serial_number == "CCAH21LP1234T5"
        assert serial.name == "Router"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,number", [("", "ABC"), ("Router", "   "), ("Router", "A" * 65)])
    async def test_invalid_input(self, monitor, name, number):
        with pytest.raises(ValidationError):
            await monitor.create_serial(1, name, number)

    @pytest.mark.asyncio
    async def test_delete_removes_history(self, monitor, storage, search_client):
        search_client.general = [hit("https://blog.example.com/a")]
        serial = await monitor.create_serial(1, "Router", "SER1")
        await monitor.scan_one(serial.id, 1, "general")

        await monitor.delete_serial(serial.id, 1)

        assert await monitor.list_detections(1) == []
        with pytest.raises(NotFoundError):
            await monitor.delete_serial(serial.id, 1)


class TestRecorder:
    @pytest.mark.asyncio
    async def test_title_truncated_and_general_ids_dropped(self):
        storage = MemoryStorage()
        serial = await storage.create_serial(1, "A", "AAA")
        recorder = DetectionRecorder(storage)

        detection_id = await recorder.record(
            serial.id,
            RawResult(url="https://blog.example.com/a", title="t" * 600),
            classify("https://blog.example.com/a"),
        )

        detection = await storage.get_detection(detection_id)
        assert len(detection.page_title) == MAX_TITLE_LENGTH
        assert detection.source_type == "general"
        assert detection.shop_id is None

    @pytest.mark.asyncio
    async def test_duplicate_returns_none(self):
        storage = MemoryStorage()
        serial = await storage.create_serial(1, "A", "AAA")
        recorder = DetectionRecorder(storage)
        raw = RawResult(url="https://blog.example.com/a")

        assert await recorder.record(serial.id, raw, classify(raw.url)) is not None
        assert await recorder.record(serial.id, raw, classify(raw.url)) is None

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self):
        class BrokenStorage(MemoryStorage):
            async def create_detection(self, **kwargs):
                raise PersistenceError("disk full")

        storage = BrokenStorage()
        recorder = DetectionRecorder(storage)
        raw = RawResult(url="https://blog.example.com/a")
        with pytest.raises(PersistenceError):
            await recorder.record(1, raw, classify(raw.url))


def test_scan_log_type():
    assert scan_log_type(SearchType.MARKETPLACE, "automatic").value == "marketplace"
    assert scan_log_type(SearchType.ALL, "automatic").value == "automatic"
    assert scan_log_type(SearchType.GENERAL, "manual").value == "manual"


class ParkedSearchClient(FakeSearchClient):
    """Blocks inside the search call until released."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def _search(self, query):
        self.entered.set()
        await self.release.wait()
        return await super()._search(query)


class TestScanConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_scans_record_each_url_once(self, monitor, storage, search_client):
        search_client.general = [hit(f"https://blog.example.com/{i}") for i in range(5)]
        serial = await monitor.create_serial(1, "Router", "SER1")

        results = await asyncio.gather(
            *(monitor.scan_one(serial.id, 1, "general") for _ in range(3))
        )

        assert sorted(r.new_detections for r in results) == [0, 0, 5]
        urls = [d.source_url for d in await storage.list_detections_by_serial(serial.id)]
        assert len(urls) == 5
        assert len(set(urls)) == 5
        assert len(await storage.recent_scan_logs(serial.id)) == 3

    @pytest.mark.asyncio
    async def test_delete_waits_for_running_scan(self, storage, notifier):
        client = ParkedSearchClient(general=[hit("https://blog.example.com/a")])
        monitor = MonitorService(
            storage, SearchService(client), notifier, LocalScanLock(wait_seconds=5.0)
        )
        serial = await monitor.create_serial(1, "Router", "SER1")

        scan = asyncio.create_task(monitor.scan_one(serial.id, 1, "general"))
        await client.entered.wait()
        delete = asyncio.create_task(monitor.delete_serial(serial.id, 1))
        await asyncio.sleep(0.01)
        assert not delete.done()

        client.release.set()
        result = await scan
        await delete

        assert result.new_detections == 1
        assert await storage.get_serial(serial.id) is None
        assert await storage.list_detections_by_serial(serial.id) == []
        assert await storage.recent_scan_logs(serial.id) == []

    @pytest.mark.asyncio
    async def test_scan_of_deleted_serial_writes_nothing(self, monitor, storage, search_client):
        search_client.general = [hit("https://blog.example.com/a")]
        serial = await monitor.create_serial(1, "Router", "SER1")
        await monitor.delete_serial(serial.id, 1)

        with pytest.raises(NotFoundError):
            await monitor.aggregator.scan_one(serial, SearchType.GENERAL)

        assert await storage.list_detections_by_serial(serial.id) == []
        assert await storage.recent_scan_logs(serial.id) == []


class TestNotificationFailure:
    @pytest.mark.asyncio
    async def test_scan_keeps_results_when_delivery_fails(self, storage, search_client):
        search_client.general = [hit("https://blog.example.com/a")]
        notifier = RecordingNotifier(fail=True)
        monitor = MonitorService(
            storage, SearchService(search_client), notifier, LocalScanLock(wait_seconds=1.0)
        )
        serial = await monitor.create_serial(1, "Router", "SER1")

        result = await monitor.scan_one(serial.id, 1, "general")

        assert result.new_detections == 1
        assert result.total_results == 1
        assert len(await storage.list_detections_by_serial(serial.id)) == 1
        assert len(await storage.recent_scan_logs(serial.id)) == 1

        fleet = await monitor.scan_all_for_user(1, "general")
        assert fleet.scanned_count == 1
        assert fleet.failed == []
