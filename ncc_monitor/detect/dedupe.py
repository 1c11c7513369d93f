"""Deduplication gate for detections."""

import logging

from ncc_monitor.storage.base import Storage

logger = logging.getLogger(__name__)


class DedupeGate:
    """
    Decides whether a (serial, source URL) pair has already been recorded.

    URLs are compared as exact strings: trailing slashes, query-string order
    and case differences make distinct URLs. One gate covers one batch of
    search results and remembers the URLs it has seen, so a URL repeated
    within the batch is dropped without another storage round-trip.
    """

    def __init__(self, storage: Storage):
        self.storage = storage
        self._batch_seen: set[tuple[int, str]] = set()

    def seen_in_batch(self, serial_id: int, source_url: str) -> bool:
        """
        Check and mark a URL for the current batch.

        Args:
            serial_id: Tracked serial ID
            source_url: Result URL

        Returns:
            True if the URL was already seen in this batch
        """
        key = (serial_id, source_url)
        if key in self._batch_seen:
            return True
        self._batch_seen.add(key)
        return False

    async def exists(self, serial_id: int, source_url: str) -> bool:
        """
        Check if a detection already exists for this serial and URL.

        Args:
            serial_id: Tracked serial ID
            source_url: Result URL

        Returns:
            True if already recorded, False otherwise
        """
        exists = await self.storage.detection_exists(serial_id, source_url)
        if exists:
            logger.debug(f"Already recorded for serial {serial_id}: {source_url}")
        return exists
