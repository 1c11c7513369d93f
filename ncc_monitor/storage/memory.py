"""In-memory storage adapter for development and tests."""

import itertools
import logging
from datetime import datetime
from typing import Optional

from ncc_monitor.db.models import (
    Detection,
    DetectionStatus,
    ScanLog,
    TrackedSerial,
)
from ncc_monitor.errors import DuplicateDetectionError
from ncc_monitor.storage.base import DashboardStats, Storage

logger = logging.getLogger(__name__)


class MemoryStorage(Storage):
    """
    Process-local store holding model instances in dicts.

    Each instance is independent; nothing is shared between instances.
    Methods never await, so each call is atomic on the event loop.
    """

    def __init__(self):
        self._serials: dict[int, TrackedSerial] = {}
        self._detections: dict[int, Detection] = {}
        self._scan_logs: dict[int, ScanLog] = {}
        # (serial_id, source_url) -> detection id
        self._detection_index: dict[tuple[int, str], int] = {}
        self._serial_ids = itertools.count(1)
        self._detection_ids = itertools.count(1)
        self._scan_log_ids = itertools.count(1)

    async def initialize(self) -> None:
        logger.info("Using in-memory storage; data is lost on restart")

    # Tracked serials

    async def create_serial(
        self, owner_id: int, name: str, serial_number: str, is_active: bool = True
    ) -> TrackedSerial:
        now = datetime.utcnow()
        serial = TrackedSerial(
            id=next(self._serial_ids),
            owner_id=owner_id,
            name=name,
            serial_number=serial_number,
            is_active=is_active,
            last_scan_at=None,
            last_marketplace_scan_at=None,
            created_at=now,
            updated_at=now,
        )
        self._serials[serial.id] = serial
        return serial

    async def get_serial(
        self, serial_id: int, owner_id: Optional[int] = None
    ) -> Optional[TrackedSerial]:
        serial = self._serials.get(serial_id)
        if serial is None:
            return None
        if owner_id is not None and serial.owner_id != owner_id:
            return None
        return serial

    async def list_serials(self, owner_id: int) -> list[TrackedSerial]:
        return [s for s in self._serials.values() if s.owner_id == owner_id]

    async def list_active_serials(self, owner_id: Optional[int] = None) -> list[TrackedSerial]:
        return [
            s for s in self._serials.values()
            if s.is_active and (owner_id is None or s.owner_id == owner_id)
        ]

    async def update_serial(
        self, serial_id: int, owner_id: int, **fields
    ) -> Optional[TrackedSerial]:
        serial = await self.get_serial(serial_id, owner_id)
        if serial is None:
            return None
        for key, value in fields.items():
            setattr(serial, key, value)
        serial.updated_at = datetime.utcnow()
        return serial

    async def delete_serial(self, serial_id: int, owner_id: int) -> bool:
        serial = await self.get_serial(serial_id, owner_id)
        if serial is None:
            return False

        for detection_id in [d.id for d in self._detections.values() if d.serial_id == serial_id]:
            detection = self._detections.pop(detection_id)
            self._detection_index.pop((serial_id, detection.source_url), None)
        for log_id in [l.id for l in self._scan_logs.values() if l.serial_id == serial_id]:
            del self._scan_logs[log_id]

        del self._serials[serial_id]
        return True

    async def mark_serial_scanned(
        self, serial_id: int, general: bool, marketplace: bool, scanned_at: datetime
    ) -> None:
        serial = self._serials.get(serial_id)
        if serial is None:
            return
        if general:
            serial.last_scan_at = scanned_at
        if marketplace:
            serial.last_marketplace_scan_at = scanned_at
        serial.updated_at = scanned_at

    # Detections

    async def detection_exists(self, serial_id: int, source_url: str) -> bool:
        return (serial_id, source_url) in self._detection_index

    async def create_detection(
        self,
        *,
        serial_id: int,
        source_url: str,
        page_title: Optional[str],
        snippet: Optional[str],
        source_type: str,
        is_marketplace: bool,
        shop_id: Optional[str] = None,
        product_id: Optional[str] = None,
        shop_name: Optional[str] = None,
    ) -> int:
        key = (serial_id, source_url)
        if key in self._detection_index:
            raise DuplicateDetectionError(serial_id, source_url)

        now = datetime.utcnow()
        detection = Detection(
            id=next(self._detection_ids),
            serial_id=serial_id,
            source_url=source_url,
            page_title=page_title,
            snippet=snippet,
            source_type=source_type,
            is_marketplace=is_marketplace,
            shop_id=shop_id,
            product_id=product_id,
            shop_name=shop_name,
            status=DetectionStatus.NEW.value,
            detected_at=now,
            created_at=now,
        )
        detection.serial = self._serials.get(serial_id)
        self._detections[detection.id] = detection
        self._detection_index[key] = detection.id
        return detection.id

    async def get_detection(self, detection_id: int) -> Optional[Detection]:
        return self._detections.get(detection_id)

    def _owner_serial_ids(self, owner_id: int) -> set[int]:
        return {s.id for s in self._serials.values() if s.owner_id == owner_id}

    @staticmethod
    def _newest_first(detections: list[Detection]) -> list[Detection]:
        return sorted(detections, key=lambda d: (d.detected_at, d.id), reverse=True)

    async def list_detections(
        self,
        owner_id: int,
        is_marketplace: Optional[bool] = None,
        source_type: Optional[str] = None,
    ) -> list[Detection]:
        serial_ids = self._owner_serial_ids(owner_id)
        matches = [
            d for d in self._detections.values()
            if d.serial_id in serial_ids
            and (is_marketplace is None or d.is_marketplace == is_marketplace)
            and (source_type is None or d.source_type == source_type)
        ]
        return self._newest_first(matches)

    async def list_detections_by_serial(self, serial_id: int) -> list[Detection]:
        return self._newest_first(
            [d for d in self._detections.values() if d.serial_id == serial_id]
        )

    async def update_detection_status(self, detection_id: int, status: str) -> bool:
        detection = self._detections.get(detection_id)
        if detection is None:
            return False
        detection.status = status
        return True

    async def count_new_detections(self, owner_id: int) -> int:
        serial_ids = self._owner_serial_ids(owner_id)
        return sum(
            1 for d in self._detections.values()
            if d.serial_id in serial_ids and d.status == DetectionStatus.NEW.value
        )

    # Scan logs

    async def create_scan_log(
        self,
        *,
        serial_id: int,
        scan_type: str,
        results_count: int,
        new_detections: int,
        marketplace_detections: int,
    ) -> int:
        log = ScanLog(
            id=next(self._scan_log_ids),
            serial_id=serial_id,
            scan_type=scan_type,
            results_count=results_count,
            new_detections=new_detections,
            marketplace_detections=marketplace_detections,
            completed_at=datetime.utcnow(),
        )
        self._scan_logs[log.id] = log
        return log.id

    async def recent_scan_logs(self, serial_id: int, limit: int = 10) -> list[ScanLog]:
        logs = [l for l in self._scan_logs.values() if l.serial_id == serial_id]
        logs.sort(key=lambda l: (l.completed_at, l.id), reverse=True)
        return logs[:limit]

    async def dashboard_stats(self, owner_id: int) -> DashboardStats:
        serials = await self.list_serials(owner_id)
        detections = await self.list_detections(owner_id)
        new = [d for d in detections if d.status == DetectionStatus.NEW.value]
        return DashboardStats(
            total_serials=len(serials),
            active_serials=sum(1 for s in serials if s.is_active),
            total_detections=len(detections),
            new_detections=len(new),
            marketplace_detections=sum(1 for d in detections if d.is_marketplace),
            new_marketplace_detections=sum(1 for d in new if d.is_marketplace),
        )
