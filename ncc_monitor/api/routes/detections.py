"""Detection review routes."""

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ncc_monitor.api.deps import get_monitor, get_owner_id
from ncc_monitor.db.models import DetectionStatus
from ncc_monitor.monitor import MonitorService

router = APIRouter(prefix="/api/detections", tags=["detections"])


class DetectionResponse(BaseModel):
    id: int
    serial_id: int
    serial_name: Optional[str] = None
    serial_number: Optional[str] = None
    source_url: str
    page_title: Optional[str]
    snippet: Optional[str]
    source_type: str
    is_marketplace: bool
    shop_id: Optional[str]
    product_id: Optional[str]
    shop_name: Optional[str]
    status: str
    detected_at: datetime

    class Config:
        from_attributes = True


class StatusUpdate(BaseModel):
    status: DetectionStatus


@router.get("", response_model=List[DetectionResponse])
async def list_detections(
    filter: Literal["all", "marketplace", "general"] = "all",
    owner_id: int = Depends(get_owner_id),
    monitor: MonitorService = Depends(get_monitor),
):
    """List the caller's detections, newest first."""
    is_marketplace = None
    if filter == "marketplace":
        is_marketplace = True
    elif filter == "general":
        is_marketplace = False
    return await monitor.list_detections(owner_id, is_marketplace=is_marketplace)


@router.get("/new-count")
async def new_detection_count(
    owner_id: int = Depends(get_owner_id),
    monitor: MonitorService = Depends(get_monitor),
):
    return {"count": await monitor.new_detection_count(owner_id)}


@router.patch("/{detection_id}")
async def update_detection_status(
    detection_id: int,
    payload: StatusUpdate,
    owner_id: int = Depends(get_owner_id),
    monitor: MonitorService = Depends(get_monitor),
):
    """Mark a detection as new, processed or ignored."""
    await monitor.update_detection_status(detection_id, payload.status, owner_id=owner_id)
    return {"success": True}
