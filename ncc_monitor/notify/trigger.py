"""Decides whether a scan run warrants a notification and sends it."""

import logging

from ncc_monitor import metrics
from ncc_monitor.notify.formatters import (
    Notification,
    build_fleet_notification,
    build_scan_notification,
)
from ncc_monitor.notify.webhook import Notifier
from ncc_monitor.worker.results import FleetScanResult, ScanResult

logger = logging.getLogger(__name__)


class NotificationTrigger:
    """Sends at most one notification per scan run, only when something new was found."""

    def __init__(self, notifier: Notifier):
        self.notifier = notifier

    async def notify_if_needed(self, result: ScanResult | FleetScanResult) -> bool:
        """
        Notify if the run found new detections.

        Delivery failures are logged and swallowed; recorded detections are
        never affected.

        Args:
            result: Single-serial or fleet result

        Returns:
            True if a notification was delivered
        """
        if isinstance(result, FleetScanResult):
            if result.total_new <= 0:
                return False
            notification = build_fleet_notification(result)
        else:
            if result.new_detections <= 0:
                return False
            notification = build_scan_notification(result)

        return await self._deliver(notification)

    async def _deliver(self, notification: Notification) -> bool:
        try:
            await self.notifier.send(notification)
        except Exception as e:
            # Don't fail the scan if delivery fails
            metrics.record_notification(False)
            logger.error(f"Failed to send notification '{notification.title}': {e}")
            return False

        metrics.record_notification(True)
        return True
