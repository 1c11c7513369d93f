"""Dashboard statistics route."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ncc_monitor.api.deps import get_monitor, get_owner_id
from ncc_monitor.monitor import MonitorService

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


class DashboardStatsResponse(BaseModel):
    total_serials: int
    active_serials: int
    total_detections: int
    new_detections: int
    marketplace_detections: int
    new_marketplace_detections: int

    class Config:
        from_attributes = True


@router.get("/stats", response_model=DashboardStatsResponse)
async def get_stats(
    owner_id: int = Depends(get_owner_id),
    monitor: MonitorService = Depends(get_monitor),
):
    return await monitor.dashboard_stats(owner_id)
