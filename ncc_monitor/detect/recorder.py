"""Persists new detections."""

import logging
from typing import Optional

from ncc_monitor import metrics
from ncc_monitor.detect.classifier import Classification
from ncc_monitor.errors import DuplicateDetectionError, ValidationError
from ncc_monitor.search.client import RawResult
from ncc_monitor.storage.base import Storage

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2048
MAX_TITLE_LENGTH = 512


class DetectionRecorder:
    """Writes a detection row for a previously unseen result."""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def record(
        self,
        serial_id: int,
        raw_result: RawResult,
        classification: Classification,
    ) -> Optional[int]:
        """
        Record a detection with status ``new``.

        ``source_type`` comes from the sub-query that produced the result and
        ``is_marketplace`` from the URL classifier; the two are independent.

        Args:
            serial_id: Tracked serial ID
            raw_result: Search hit
            classification: Classifier output for raw_result.url

        Returns:
            New detection ID, or None if storage already holds this URL

        Raises:
            ValidationError: If the URL exceeds the stored length
            PersistenceError: If the write fails
        """
        if len(raw_result.url) > MAX_URL_LENGTH:
            raise ValidationError(
                f"Source URL exceeds {MAX_URL_LENGTH} characters: {raw_result.url[:80]}..."
            )

        title = raw_result.title[:MAX_TITLE_LENGTH] if raw_result.title else None
        source_type = raw_result.source_type.value

        try:
            detection_id = await self.storage.create_detection(
                serial_id=serial_id,
                source_url=raw_result.url,
                page_title=title,
                snippet=raw_result.snippet or None,
                source_type=source_type,
                is_marketplace=classification.is_marketplace,
                shop_id=classification.shop_id if classification.is_marketplace else None,
                product_id=classification.product_id if classification.is_marketplace else None,
                shop_name=classification.shop_name if classification.is_marketplace else None,
            )
        except DuplicateDetectionError:
            logger.debug(f"Detection already stored for serial {serial_id}: {raw_result.url}")
            return None

        metrics.record_detection(source_type, classification.is_marketplace)
        logger.info(
            f"Recorded detection {detection_id} for serial {serial_id} "
            f"({source_type}{', marketplace' if classification.is_marketplace else ''}): "
            f"{raw_result.url}"
        )
        return detection_id
