"""Tracked serial management routes."""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ncc_monitor.api.deps import get_monitor, get_owner_id
from ncc_monitor.api.routes.detections import DetectionResponse
from ncc_monitor.monitor import MonitorService

router = APIRouter(prefix="/api/serials", tags=["serials"])


class SerialResponse(BaseModel):
    id: int
    name: str
    serial_number: str
    is_active: bool
    last_scan_at: Optional[datetime]
    last_marketplace_scan_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SerialCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    serial_number: str = Field(..., min_length=1, max_length=64)
    is_active: bool = True


class SerialUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    serial_number: Optional[str] = Field(None, min_length=1, max_length=64)
    is_active: Optional[bool] = None


class ScanLogResponse(BaseModel):
    id: int
    serial_id: int
    scan_type: str
    results_count: int
    new_detections: int
    marketplace_detections: int
    completed_at: datetime

    class Config:
        from_attributes = True


@router.get("", response_model=List[SerialResponse])
async def list_serials(
    owner_id: int = Depends(get_owner_id),
    monitor: MonitorService = Depends(get_monitor),
):
    """List the caller's tracked serials."""
    return await monitor.list_serials(owner_id)


@router.post("", response_model=SerialResponse, status_code=status.HTTP_201_CREATED)
async def create_serial(
    payload: SerialCreate,
    owner_id: int = Depends(get_owner_id),
    monitor: MonitorService = Depends(get_monitor),
):
    """Register a new serial for monitoring."""
    return await monitor.create_serial(
        owner_id, payload.name, payload.serial_number, payload.is_active
    )


@router.get("/{serial_id}", response_model=SerialResponse)
async def get_serial(
    serial_id: int,
    owner_id: int = Depends(get_owner_id),
    monitor: MonitorService = Depends(get_monitor),
):
    return await monitor.get_serial(serial_id, owner_id)


@router.patch("/{serial_id}", response_model=SerialResponse)
async def update_serial(
    serial_id: int,
    payload: SerialUpdate,
    owner_id: int = Depends(get_owner_id),
    monitor: MonitorService = Depends(get_monitor),
):
    return await monitor.update_serial(
        serial_id,
        owner_id,
        name=payload.name,
        serial_number=payload.serial_number,
        is_active=payload.is_active,
    )


@router.delete("/{serial_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_serial(
    serial_id: int,
    owner_id: int = Depends(get_owner_id),
    monitor: MonitorService = Depends(get_monitor),
):
    """Delete a serial with its detections and scan history."""
    await monitor.delete_serial(serial_id, owner_id)


@router.get("/{serial_id}/detections", response_model=List[DetectionResponse])
async def list_serial_detections(
    serial_id: int,
    owner_id: int = Depends(get_owner_id),
    monitor: MonitorService = Depends(get_monitor),
):
    return await monitor.detections_for_serial(serial_id, owner_id)


@router.get("/{serial_id}/scans", response_model=List[ScanLogResponse])
async def list_scan_history(
    serial_id: int,
    limit: int = Query(10, ge=1, le=100),
    owner_id: int = Depends(get_owner_id),
    monitor: MonitorService = Depends(get_monitor),
):
    """Recent scan logs for a serial."""
    return await monitor.scan_history(serial_id, owner_id, limit)
