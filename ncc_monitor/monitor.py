"""Monitoring service: the entry point wrapped by the HTTP layer and scheduler."""

import logging
from typing import Optional

from ncc_monitor.config import Settings
from ncc_monitor.db.models import (
    Detection,
    DetectionStatus,
    ScanLog,
    SearchType,
    SourceType,
    TrackedSerial,
)
from ncc_monitor.errors import NotFoundError, ValidationError
from ncc_monitor.notify.trigger import NotificationTrigger
from ncc_monitor.notify.webhook import Notifier, build_notifier
from ncc_monitor.search.client import build_search_client
from ncc_monitor.search.service import SearchService
from ncc_monitor.storage import build_storage
from ncc_monitor.storage.base import DashboardStats, Storage
from ncc_monitor.worker.results import FleetScanResult, ScanResult, SweepSummary
from ncc_monitor.worker.scan_lock import SerialScanLock, build_scan_lock
from ncc_monitor.worker.scanner import ScanAggregator
from ncc_monitor.worker.tasks import FleetScanner

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255
MAX_SERIAL_LENGTH = 64


def normalize_serial_number(value: str) -> str:
    """Trim and uppercase a serial number, rejecting empty or overlong values."""
    if not isinstance(value, str):
        raise ValidationError("Serial number must be a string")
    normalized = value.strip().upper()
    if not normalized:
        raise ValidationError("Serial number must not be empty")
    if len(normalized) > MAX_SERIAL_LENGTH:
        raise ValidationError(f"Serial number must be at most {MAX_SERIAL_LENGTH} characters")
    return normalized


def validate_name(value: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Name must not be empty")
    name = value.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be at most {MAX_NAME_LENGTH} characters")
    return name


def _coerce(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {label}: {value}") from e


class MonitorService:
    """
    Serial registration, scanning and detection review for the request layer.

    All collaborators are injected; ``from_settings`` builds the production set.
    """

    def __init__(
        self,
        storage: Storage,
        search_service: SearchService,
        notifier: Notifier,
        scan_lock: Optional[SerialScanLock] = None,
    ):
        self.storage = storage
        self.search_service = search_service
        self.notifier = notifier
        self.notification_trigger = NotificationTrigger(notifier)
        self.aggregator = ScanAggregator(storage, search_service, scan_lock)
        self.fleet = FleetScanner(storage, self.aggregator, self.notification_trigger)

    @classmethod
    def from_settings(cls, settings: Settings) -> "MonitorService":
        return cls(
            storage=build_storage(settings),
            search_service=SearchService(build_search_client(settings)),
            notifier=build_notifier(settings),
            scan_lock=build_scan_lock(settings),
        )

    async def initialize(self) -> None:
        await self.storage.initialize()

    async def close(self) -> None:
        await self.search_service.close()
        await self.notifier.close()
        await self.aggregator.scan_lock.close()
        await self.storage.close()

    # Serials

    async def create_serial(
        self, owner_id: int, name: str, serial_number: str, is_active: bool = True
    ) -> TrackedSerial:
        """
        Register a serial for monitoring.

        Raises:
            ValidationError: On empty or overlong name or serial number
        """
        serial = await self.storage.create_serial(
            owner_id=owner_id,
            name=validate_name(name),
            serial_number=normalize_serial_number(serial_number),
            is_active=is_active,
        )
        logger.info(f"Owner {owner_id} registered serial {serial.id} ({serial.serial_number})")
        return serial

    async def get_serial(self, serial_id: int, owner_id: int) -> TrackedSerial:
        serial = await self.storage.get_serial(serial_id, owner_id)
        if serial is None:
            raise NotFoundError(f"Serial {serial_id} not found")
        return serial

    async def list_serials(self, owner_id: int) -> list[TrackedSerial]:
        return await self.storage.list_serials(owner_id)

    async def update_serial(
        self,
        serial_id: int,
        owner_id: int,
        name: Optional[str] = None,
        serial_number: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> TrackedSerial:
        """Update the given fields of an owned serial."""
        fields = {}
        if name is not None:
            fields["name"] = validate_name(name)
        if serial_number is not None:
            fields["serial_number"] = normalize_serial_number(serial_number)
        if is_active is not None:
            fields["is_active"] = is_active

        serial = await self.storage.update_serial(serial_id, owner_id, **fields)
        if serial is None:
            raise NotFoundError(f"Serial {serial_id} not found")
        return serial

    async def delete_serial(self, serial_id: int, owner_id: int) -> None:
        """
        Delete a serial together with its detections and scan logs.

        Waits for an in-flight scan of the serial to finish first, so the
        scan cannot write records after the serial is gone.

        Raises:
            NotFoundError: If the serial is missing or owned by someone else
            ScanInProgressError: If the running scan does not finish in time
        """
        async with self.aggregator.scan_lock.hold(serial_id):
            deleted = await self.storage.delete_serial(serial_id, owner_id)
        if not deleted:
            raise NotFoundError(f"Serial {serial_id} not found")
        logger.info(f"Owner {owner_id} deleted serial {serial_id}")

    # Scans

    async def scan_one(
        self, serial_id: int, owner_id: int, search_type: SearchType | str = SearchType.ALL
    ) -> ScanResult:
        """
        Scan one owned serial and notify if anything new was found.

        Raises:
            NotFoundError: If the serial is missing or owned by someone else
            SearchUnavailableError: If the search backend fails
        """
        search_type = _coerce(SearchType, search_type, "search type")
        serial = await self.get_serial(serial_id, owner_id)
        result = await self.aggregator.scan_one(serial, search_type, trigger="manual")
        await self.notification_trigger.notify_if_needed(result)
        return result

    async def scan_all_for_user(
        self, owner_id: int, search_type: SearchType | str = SearchType.ALL
    ) -> FleetScanResult:
        """Scan every active serial of an owner; per-serial failures are flagged, not raised."""
        search_type = _coerce(SearchType, search_type, "search type")
        return await self.fleet.scan_all(owner_id, search_type, trigger="manual")

    async def sweep(self, search_type: SearchType | str = SearchType.ALL) -> SweepSummary:
        """Automated scan of all owners' active serials."""
        return await self.fleet.sweep(_coerce(SearchType, search_type, "search type"))

    async def scan_history(self, serial_id: int, owner_id: int, limit: int = 10) -> list[ScanLog]:
        if limit < 1:
            raise ValidationError("Limit must be at least 1")
        await self.get_serial(serial_id, owner_id)
        return await self.storage.recent_scan_logs(serial_id, limit)

    # Detections

    async def list_detections(
        self,
        owner_id: int,
        is_marketplace: Optional[bool] = None,
        source_type: SourceType | str | None = None,
    ) -> list[Detection]:
        """List an owner's detections, newest first, optionally filtered."""
        if source_type is not None:
            source_type = _coerce(SourceType, source_type, "source type").value
        return await self.storage.list_detections(owner_id, is_marketplace, source_type)

    async def detections_for_serial(self, serial_id: int, owner_id: int) -> list[Detection]:
        await self.get_serial(serial_id, owner_id)
        return await self.storage.list_detections_by_serial(serial_id)

    async def update_detection_status(
        self,
        detection_id: int,
        status: DetectionStatus | str,
        owner_id: Optional[int] = None,
    ) -> None:
        """
        Move a detection to any status.

        Raises:
            ValidationError: On an unknown status
            NotFoundError: If the detection is missing, or outside owner_id's serials
        """
        status = _coerce(DetectionStatus, status, "status")

        if owner_id is not None:
            detection = await self.storage.get_detection(detection_id)
            if detection is None or await self.storage.get_serial(
                detection.serial_id, owner_id
            ) is None:
                raise NotFoundError(f"Detection {detection_id} not found")

        if not await self.storage.update_detection_status(detection_id, status.value):
            raise NotFoundError(f"Detection {detection_id} not found")

    async def new_detection_count(self, owner_id: int) -> int:
        return await self.storage.count_new_detections(owner_id)

    async def dashboard_stats(self, owner_id: int) -> DashboardStats:
        return await self.storage.dashboard_stats(owner_id)
