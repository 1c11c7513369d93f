"""Notification message builders and platform-specific payload formatters.

Provides formatters for:
- Discord (embed format)
- Slack (mrkdwn text)
- Generic (JSON)
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict

from ncc_monitor.db.models import SearchType
from ncc_monitor.worker.results import FleetScanResult, ScanResult

ALERT_TITLE = "NCC serial monitor alert"
MARKETPLACE_ALERT_TITLE = "Shopee listing alert"
MARKETPLACE_LABEL = "Shopee"
REPORT_HINT = "Review them and report the listings to Shopee."


@dataclass
class Notification:
    """Outbound message."""
    title: str
    content: str


def _plural(count: int) -> str:
    return "listing" if count == 1 else "listings"


def build_scan_notification(result: ScanResult) -> Notification:
    """
    Build the message for a single-serial scan.

    Args:
        result: Scan result with at least one new detection

    Returns:
        Notification
    """
    serial = f'Serial "{result.serial_name}" ({result.serial_number})'
    count = result.new_detections

    if result.search_type == SearchType.MARKETPLACE:
        return Notification(
            title=MARKETPLACE_ALERT_TITLE,
            content=(
                f"{serial} has {count} new {MARKETPLACE_LABEL} {_plural(count)}. "
                f"{REPORT_HINT}"
            ),
        )

    note = ""
    if result.marketplace_detections > 0:
        note = f" ({result.marketplace_detections} from {MARKETPLACE_LABEL})"
    return Notification(
        title=ALERT_TITLE,
        content=(
            f"{serial} has {count} new unauthorized {_plural(count)}{note}. "
            f"Please review them."
        ),
    )


def build_fleet_notification(result: FleetScanResult) -> Notification:
    """
    Build the message for a fleet scan, one line per affected serial.

    Args:
        result: Fleet result with total_new > 0

    Returns:
        Notification
    """
    marketplace_only = result.search_type == SearchType.MARKETPLACE

    lines = []
    for outcome in result.affected:
        line = f"• {outcome.name}: {outcome.new_detections} new"
        if outcome.marketplace_detections > 0 and not marketplace_only:
            line += f" ({MARKETPLACE_LABEL}: {outcome.marketplace_detections})"
        lines.append(line)

    if marketplace_only:
        header = (
            f"{MARKETPLACE_LABEL} scan complete: {result.total_new} new "
            f"{_plural(result.total_new)} found:"
        )
    else:
        note = ""
        if result.total_marketplace_new > 0:
            note = f" ({result.total_marketplace_new} from {MARKETPLACE_LABEL})"
        header = (
            f"Scan complete: {result.total_new} new unauthorized "
            f"{_plural(result.total_new)} found{note}:"
        )

    content = header + "\n" + "\n".join(lines)

    failed = result.failed
    if failed:
        content += "\nScan failed for: " + ", ".join(o.name for o in failed)
    if marketplace_only:
        content += f"\n\n{REPORT_HINT}"

    return Notification(
        title=MARKETPLACE_ALERT_TITLE if marketplace_only else ALERT_TITLE,
        content=content,
    )


def format_discord_payload(notification: Notification, username: str) -> Dict[str, Any]:
    """Format a notification as a Discord webhook payload."""
    embed = {
        "title": notification.title,
        "description": notification.content[:4096],
        "color": 0xFF0000,
        "timestamp": datetime.utcnow().isoformat(),
    }
    return {
        "embeds": [embed],
        "username": username,
    }


def format_slack_payload(notification: Notification) -> Dict[str, Any]:
    """Format a notification as a Slack incoming-webhook payload."""
    return {"text": f"*{notification.title}*\n{notification.content}"}


def format_generic_payload(notification: Notification) -> Dict[str, Any]:
    """Format a notification as plain JSON."""
    return {
        "title": notification.title,
        "content": notification.content,
        "timestamp": datetime.utcnow().isoformat(),
    }
