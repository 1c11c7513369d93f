"""Notification delivery: webhooks (Discord, Slack, generic) or the log."""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

import httpx

from ncc_monitor.config import Settings
from ncc_monitor.errors import NotificationError
from ncc_monitor.notify.formatters import (
    Notification,
    format_discord_payload,
    format_generic_payload,
    format_slack_payload,
)

logger = logging.getLogger(__name__)


class WebhookType(Enum):
    """Supported webhook types."""
    DISCORD = "discord"
    SLACK = "slack"
    GENERIC = "generic"


class Notifier(ABC):
    """Delivers a notification; raises NotificationError on failure."""

    @abstractmethod
    async def send(self, notification: Notification) -> None:
        ...

    async def close(self):
        """Release resources."""


class LogNotifier(Notifier):
    """Writes notifications to the log when no webhook is configured."""

    async def send(self, notification: Notification) -> None:
        logger.warning(f"[{notification.title}] {notification.content}")


class WebhookNotifier(Notifier):
    """Posts notifications to a single webhook URL."""

    def __init__(
        self,
        webhook_url: str,
        webhook_type: WebhookType = WebhookType.DISCORD,
        username: str = "NCC Monitor",
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_url = webhook_url
        self.webhook_type = webhook_type
        self.username = username
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _build_payload(self, notification: Notification) -> dict:
        if self.webhook_type == WebhookType.DISCORD:
            return format_discord_payload(notification, self.username)
        if self.webhook_type == WebhookType.SLACK:
            return format_slack_payload(notification)
        return format_generic_payload(notification)

    async def send(self, notification: Notification) -> None:
        """
        Post a notification.

        Raises:
            NotificationError: On transport failure or non-2xx response
        """
        client = await self._get_client()
        payload = self._build_payload(notification)

        try:
            response = await client.post(self.webhook_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(
                f"{self.webhook_type.value} webhook delivery failed: {e}"
            ) from e

        logger.info(f"Sent {self.webhook_type.value} notification: {notification.title}")


def build_notifier(settings: Settings) -> Notifier:
    """Choose the notifier once, at process start."""
    if not settings.notification_webhook_url:
        logger.info("Notifications: log only (no webhook configured)")
        return LogNotifier()
    webhook_type = WebhookType(settings.notification_webhook_type.lower())
    logger.info(f"Notifications: {webhook_type.value} webhook")
    return WebhookNotifier(
        settings.notification_webhook_url,
        webhook_type=webhook_type,
        username=settings.notification_username,
    )
