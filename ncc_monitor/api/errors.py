"""Translation of service errors into HTTP responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ncc_monitor.errors import (
    MonitorError,
    NotFoundError,
    ScanInProgressError,
    SearchUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ScanInProgressError, status.HTTP_409_CONFLICT),
    (SearchUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(exc: MonitorError) -> int:
    for error_cls, code in STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def monitor_error_handler(request: Request, exc: MonitorError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=code, content={"detail": str(exc)})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MonitorError, monitor_error_handler)
