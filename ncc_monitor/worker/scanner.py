"""Single-serial scan: search, dedupe, classify, record, log."""

from datetime import datetime

from ncc_monitor import metrics
from ncc_monitor.db.models import ScanType, SearchType, TrackedSerial
from ncc_monitor.detect.classifier import classify
from ncc_monitor.detect.dedupe import DedupeGate
from ncc_monitor.detect.recorder import DetectionRecorder
from ncc_monitor.errors import (
    NotFoundError,
    PersistenceError,
    SearchUnavailableError,
    ValidationError,
)
from ncc_monitor.logging_config import get_logger
from ncc_monitor.search.service import SearchService, includes_general, includes_marketplace
from ncc_monitor.storage.base import Storage
from ncc_monitor.worker.results import ScanResult
from ncc_monitor.worker.scan_lock import LocalScanLock, SerialScanLock


def scan_log_type(search_type: SearchType, trigger: str) -> ScanType:
    """Marketplace-only scans log as ``marketplace``, everything else by trigger."""
    if search_type == SearchType.MARKETPLACE:
        return ScanType.MARKETPLACE
    if trigger == "automatic":
        return ScanType.AUTOMATIC
    return ScanType.MANUAL


class ScanAggregator:
    """
    Runs one scan for one tracked serial.

    Steps:
    1. Gather raw results from the search service
    2. Skip URLs already recorded (or repeated in this batch)
    3. Classify and record the rest
    4. Stamp the serial's last-scan timestamps
    5. Write a scan log with the counters
    """

    def __init__(
        self,
        storage: Storage,
        search_service: SearchService,
        scan_lock: SerialScanLock | None = None,
    ):
        self.storage = storage
        self.search_service = search_service
        self.recorder = DetectionRecorder(storage)
        self.scan_lock = scan_lock or LocalScanLock()

    async def scan_one(
        self,
        serial: TrackedSerial,
        search_type: SearchType = SearchType.ALL,
        trigger: str = "manual",
    ) -> ScanResult:
        """
        Scan one serial while holding its scan lock.

        Args:
            serial: Tracked serial to scan
            search_type: all, marketplace or general
            trigger: "manual" or "automatic"

        Returns:
            ScanResult with the counters

        Raises:
            SearchUnavailableError: If the search backend fails (nothing is logged)
            ScanInProgressError: If another scan holds this serial
            NotFoundError: If the serial was deleted before the lock was acquired
            PersistenceError: If the timestamps or scan log cannot be written
        """
        async with self.scan_lock.hold(serial.id):
            try:
                # The serial may have been deleted while this scan waited for the lock
                if await self.storage.get_serial(serial.id) is None:
                    raise NotFoundError(f"Serial {serial.id} not found")
                result = await self._scan(serial, search_type, trigger)
            except Exception:
                metrics.record_scan(search_type.value, False)
                raise
        metrics.record_scan(search_type.value, True)
        return result

    async def _scan(
        self, serial: TrackedSerial, search_type: SearchType, trigger: str
    ) -> ScanResult:
        log = get_logger(__name__, serial_id=serial.id, search_type=search_type.value)
        result = ScanResult(
            serial_id=serial.id,
            serial_name=serial.name,
            serial_number=serial.serial_number,
            search_type=search_type,
        )

        try:
            raw_results = await self.search_service.gather(serial.serial_number, search_type)
        except SearchUnavailableError as e:
            log.warning(f"Search failed for serial {serial.serial_number}: {e}")
            raise
        result.total_results = len(raw_results)

        gate = DedupeGate(self.storage)
        for raw in raw_results:
            if gate.seen_in_batch(serial.id, raw.url):
                continue
            try:
                if await gate.exists(serial.id, raw.url):
                    continue
                classification = classify(raw.url)
                detection_id = await self.recorder.record(serial.id, raw, classification)
            except (PersistenceError, ValidationError) as e:
                result.failed_results += 1
                log.error(f"Failed to record {raw.url}: {e}")
                continue

            if detection_id is None:
                continue
            result.new_detections += 1
            if classification.is_marketplace:
                result.marketplace_detections += 1

        await self.storage.mark_serial_scanned(
            serial.id,
            general=includes_general(search_type),
            marketplace=includes_marketplace(search_type),
            scanned_at=datetime.utcnow(),
        )
        await self.storage.create_scan_log(
            serial_id=serial.id,
            scan_type=scan_log_type(search_type, trigger).value,
            results_count=result.total_results,
            new_detections=result.new_detections,
            marketplace_detections=result.marketplace_detections,
        )

        log.info(
            f"Scan complete for {serial.serial_number}: {result.total_results} results, "
            f"{result.new_detections} new ({result.marketplace_detections} marketplace)"
            + (f", {result.failed_results} failed" if result.failed_results else "")
        )
        return result
