"""Manual scan routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ncc_monitor.api.deps import get_monitor, get_owner_id
from ncc_monitor.db.models import SearchType
from ncc_monitor.monitor import MonitorService

router = APIRouter(prefix="/api/scans", tags=["scans"])


class ScanRequest(BaseModel):
    search_type: SearchType = SearchType.ALL


class ScanResponse(BaseModel):
    serial_id: int
    serial_name: str
    serial_number: str
    search_type: SearchType
    total_results: int
    new_detections: int
    marketplace_detections: int
    failed_results: int

    class Config:
        from_attributes = True


class SerialOutcomeResponse(BaseModel):
    serial_id: int
    name: str
    new_detections: int
    marketplace_detections: int
    error: Optional[str]

    class Config:
        from_attributes = True


class FleetScanResponse(BaseModel):
    search_type: SearchType
    scanned_count: int
    total_new: int
    total_marketplace_new: int
    results: List[SerialOutcomeResponse]

    class Config:
        from_attributes = True


@router.post("/serials/{serial_id}", response_model=ScanResponse)
async def scan_serial(
    serial_id: int,
    payload: Optional[ScanRequest] = None,
    owner_id: int = Depends(get_owner_id),
    monitor: MonitorService = Depends(get_monitor),
):
    """Run a manual scan of one serial."""
    payload = payload or ScanRequest()
    return await monitor.scan_one(serial_id, owner_id, payload.search_type)


@router.post("/all", response_model=FleetScanResponse)
async def scan_all(
    payload: Optional[ScanRequest] = None,
    owner_id: int = Depends(get_owner_id),
    monitor: MonitorService = Depends(get_monitor),
):
    """
    Scan every active serial of the caller.

    Serials that fail are reported with an error instead of failing the request.
    """
    payload = payload or ScanRequest()
    return await monitor.scan_all_for_user(owner_id, payload.search_type)
