"""Fleet scans: every active serial for an owner, and the automated sweep."""

import logging
from collections import OrderedDict
from typing import Optional

from ncc_monitor import metrics
from ncc_monitor.db.models import SearchType, TrackedSerial
from ncc_monitor.logging_config import get_logger
from ncc_monitor.notify.trigger import NotificationTrigger
from ncc_monitor.storage.base import Storage
from ncc_monitor.worker.results import FleetScanResult, SerialScanOutcome, SweepSummary
from ncc_monitor.worker.scanner import ScanAggregator

logger = logging.getLogger(__name__)


class FleetScanner:
    """
    Runs the scan aggregator over many serials.

    Serials are scanned one at a time in listing order. A failure for one
    serial is recorded on its outcome and the run moves on to the next;
    a fleet run never fails as a whole because of one serial.
    """

    def __init__(
        self,
        storage: Storage,
        aggregator: ScanAggregator,
        notification_trigger: Optional[NotificationTrigger] = None,
    ):
        self.storage = storage
        self.aggregator = aggregator
        self.notification_trigger = notification_trigger

    async def scan_all(
        self,
        owner_id: int,
        search_type: SearchType = SearchType.ALL,
        trigger: str = "manual",
        serials: Optional[list[TrackedSerial]] = None,
    ) -> FleetScanResult:
        """
        Scan every active serial belonging to an owner.

        Args:
            owner_id: Owner whose serials are scanned
            search_type: all, marketplace or general
            trigger: "manual" or "automatic"
            serials: Pre-loaded active serials (loaded from storage if None)

        Returns:
            FleetScanResult with per-serial outcomes
        """
        if serials is None:
            serials = await self.storage.list_active_serials(owner_id)
        active = [s for s in serials if s.is_active]

        fleet = FleetScanResult(owner_id=owner_id, search_type=search_type)
        log = get_logger(__name__, owner_id=owner_id, search_type=search_type.value)
        log.info(
            f"Fleet scan for owner {owner_id}: {len(active)} active serials "
            f"(search_type: {search_type.value}, trigger: {trigger})"
        )

        for serial in active:
            try:
                result = await self.aggregator.scan_one(serial, search_type, trigger)
            except Exception as e:
                metrics.fleet_scan_failures_total.inc()
                log.bind(serial_id=serial.id).error(
                    f"Scan failed for serial {serial.id} ({serial.serial_number}): {e}",
                    exc_info=True,
                )
                fleet.results.append(
                    SerialScanOutcome(
                        serial_id=serial.id,
                        name=serial.name,
                        error=str(e) or type(e).__name__,
                    )
                )
                continue

            fleet.scanned_count += 1
            fleet.total_new += result.new_detections
            fleet.total_marketplace_new += result.marketplace_detections
            fleet.results.append(
                SerialScanOutcome(
                    serial_id=serial.id,
                    name=serial.name,
                    new_detections=result.new_detections,
                    marketplace_detections=result.marketplace_detections,
                )
            )

        log.info(
            f"Fleet scan for owner {owner_id} complete: {fleet.scanned_count} scanned, "
            f"{fleet.total_new} new ({fleet.total_marketplace_new} marketplace), "
            f"{len(fleet.failed)} failed"
        )

        if self.notification_trigger:
            await self.notification_trigger.notify_if_needed(fleet)

        return fleet

    async def sweep(self, search_type: SearchType = SearchType.ALL) -> SweepSummary:
        """
        Automated sweep over every owner's active serials.

        Runs one fleet scan per owner so each owner gets at most one
        notification.
        """
        serials = await self.storage.list_active_serials()

        by_owner: "OrderedDict[int, list[TrackedSerial]]" = OrderedDict()
        for serial in serials:
            by_owner.setdefault(serial.owner_id, []).append(serial)

        summary = SweepSummary(owners=len(by_owner))
        for owner_id, owner_serials in by_owner.items():
            try:
                fleet = await self.scan_all(
                    owner_id, search_type, trigger="automatic", serials=owner_serials
                )
            except Exception as e:
                logger.error(f"Sweep failed for owner {owner_id}: {e}", exc_info=True)
                summary.failed_count += len(owner_serials)
                continue
            summary.scanned_count += fleet.scanned_count
            summary.total_new += fleet.total_new
            summary.failed_count += len(fleet.failed)

        logger.info(
            f"Automatic sweep complete: {summary.owners} owners, "
            f"{summary.scanned_count} serials scanned, {summary.total_new} new, "
            f"{summary.failed_count} failed"
        )
        return summary
