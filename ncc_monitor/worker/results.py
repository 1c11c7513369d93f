"""Result types returned by single-serial and fleet scans."""

from dataclasses import dataclass, field
from typing import Optional

from ncc_monitor.db.models import SearchType


@dataclass
class ScanResult:
    """Counters for one completed scan of one serial."""
    serial_id: int
    serial_name: str
    serial_number: str
    search_type: SearchType
    total_results: int = 0
    new_detections: int = 0
    marketplace_detections: int = 0
    failed_results: int = 0


@dataclass
class SerialScanOutcome:
    """Per-serial line of a fleet scan."""
    serial_id: int
    name: str
    new_detections: int = 0
    marketplace_detections: int = 0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class FleetScanResult:
    """Totals for a scan of every active serial belonging to one owner."""
    owner_id: int
    search_type: SearchType
    scanned_count: int = 0
    total_new: int = 0
    total_marketplace_new: int = 0
    results: list[SerialScanOutcome] = field(default_factory=list)

    @property
    def failed(self) -> list[SerialScanOutcome]:
        return [r for r in self.results if r.failed]

    @property
    def affected(self) -> list[SerialScanOutcome]:
        return [r for r in self.results if not r.failed and r.new_detections > 0]


@dataclass
class SweepSummary:
    """Totals for an automated sweep across all owners."""
    owners: int = 0
    scanned_count: int = 0
    total_new: int = 0
    failed_count: int = 0
