"""Storage adapters and the startup-time factory that picks one."""

import logging

from ncc_monitor.config import Settings
from ncc_monitor.storage.base import DashboardStats, Storage
from ncc_monitor.storage.database import DatabaseStorage
from ncc_monitor.storage.memory import MemoryStorage

logger = logging.getLogger(__name__)

__all__ = ["DashboardStats", "DatabaseStorage", "MemoryStorage", "Storage", "build_storage"]


def build_storage(settings: Settings) -> Storage:
    """Choose the storage adapter once, at process start."""
    backend = settings.storage_backend.lower()
    if backend == "memory" or not settings.database_url:
        logger.info("Storage backend: memory")
        return MemoryStorage()
    if backend != "database":
        raise ValueError(f"Unknown storage backend: {settings.storage_backend}")
    logger.info("Storage backend: database")
    return DatabaseStorage(settings.database_url)
