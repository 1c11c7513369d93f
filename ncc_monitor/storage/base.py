"""Storage interface shared by the memory and database adapters."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ncc_monitor.db.models import Detection, ScanLog, TrackedSerial


@dataclass
class DashboardStats:
    """Per-owner counts shown on the dashboard."""
    total_serials: int = 0
    active_serials: int = 0
    total_detections: int = 0
    new_detections: int = 0
    marketplace_detections: int = 0
    new_marketplace_detections: int = 0


class Storage(ABC):
    """
    Persistence for tracked serials, detections and scan logs.

    Reads are scoped by owner where the entity has one. ``create_detection``
    is authoritative for the (serial_id, source_url) uniqueness invariant:
    it raises DuplicateDetectionError instead of writing a second row.
    Failures of the underlying store surface as PersistenceError.
    """

    async def initialize(self) -> None:
        """Prepare the store (create tables, open connections)."""

    async def close(self) -> None:
        """Release resources held by the store."""

    # Tracked serials

    @abstractmethod
    async def create_serial(
        self, owner_id: int, name: str, serial_number: str, is_active: bool = True
    ) -> TrackedSerial:
        ...

    @abstractmethod
    async def get_serial(
        self, serial_id: int, owner_id: Optional[int] = None
    ) -> Optional[TrackedSerial]:
        ...

    @abstractmethod
    async def list_serials(self, owner_id: int) -> list[TrackedSerial]:
        """All serials for an owner in insertion order."""

    @abstractmethod
    async def list_active_serials(self, owner_id: Optional[int] = None) -> list[TrackedSerial]:
        """Active serials for one owner, or for every owner when owner_id is None."""

    @abstractmethod
    async def update_serial(
        self, serial_id: int, owner_id: int, **fields
    ) -> Optional[TrackedSerial]:
        ...

    @abstractmethod
    async def delete_serial(self, serial_id: int, owner_id: int) -> bool:
        """Delete a serial with its detections and scan logs."""

    @abstractmethod
    async def mark_serial_scanned(
        self, serial_id: int, general: bool, marketplace: bool, scanned_at: datetime
    ) -> None:
        ...

    # Detections

    @abstractmethod
    async def detection_exists(self, serial_id: int, source_url: str) -> bool:
        ...

    @abstractmethod
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
        ...

    @abstractmethod
    async def get_detection(self, detection_id: int) -> Optional[Detection]:
        ...

    @abstractmethod
    async def list_detections(
        self,
        owner_id: int,
        is_marketplace: Optional[bool] = None,
        source_type: Optional[str] = None,
    ) -> list[Detection]:
        """Detections across an owner's serials, newest first."""

    @abstractmethod
    async def list_detections_by_serial(self, serial_id: int) -> list[Detection]:
        ...

    @abstractmethod
    async def update_detection_status(self, detection_id: int, status: str) -> bool:
        ...

    @abstractmethod
    async def count_new_detections(self, owner_id: int) -> int:
        ...

    # Scan logs

    @abstractmethod
    async def create_scan_log(
        self,
        *,
        serial_id: int,
        scan_type: str,
        results_count: int,
        new_detections: int,
        marketplace_detections: int,
    ) -> int:
        ...

    @abstractmethod
    async def recent_scan_logs(self, serial_id: int, limit: int = 10) -> list[ScanLog]:
        ...

    @abstractmethod
    async def dashboard_stats(self, owner_id: int) -> DashboardStats:
        ...
