"""FastAPI dependencies."""

from fastapi import Header, HTTPException, Request, status

from ncc_monitor.monitor import MonitorService


def get_monitor(request: Request) -> MonitorService:
    """Dependency for the monitor service built at startup."""
    return request.app.state.monitor


async def get_owner_id(
    x_owner_id: int = Header(..., alias="X-Owner-Id")
) -> int:
    """
    Dependency identifying the calling owner.

    Authentication happens upstream; this layer only trusts the header.

    Raises:
        HTTPException: 400 if the owner id is not positive
    """
    if x_owner_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid owner id",
        )
    return x_owner_id
