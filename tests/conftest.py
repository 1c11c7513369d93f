"""Shared fixtures and fakes."""

from typing import Optional

import pytest

from ncc_monitor.errors import SearchUnavailableError
from ncc_monitor.monitor import MonitorService
from ncc_monitor.notify.formatters import Notification
from ncc_monitor.notify.webhook import Notifier
from ncc_monitor.search.client import SearchClient
from ncc_monitor.search.service import SearchService
from ncc_monitor.storage.memory import MemoryStorage
from ncc_monitor.worker.scan_lock import LocalScanLock


class FakeSearchClient(SearchClient):
    """Returns canned hits keyed by scope; marketplace queries start with ``site:``."""

    name = "fake"

    def __init__(self, marketplace=None, general=None, fail_for: Optional[set] = None):
        super().__init__(max_attempts=1)
        self.marketplace = list(marketplace or [])
        self.general = list(general or [])
        self.fail_for = fail_for or set()
        self.queries: list[str] = []

    async def _search(self, query):
        self.queries.append(query)
        if any(serial in query for serial in self.fail_for):
            raise SearchUnavailableError("fake: backend down")
        if query.startswith("site:"):
            return list(self.marketplace)
        return list(self.general)


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        if self.fail:
            raise RuntimeError("webhook down")
        self.sent.append(notification)


def hit(url: str, title: str = "", snippet: str = ""):
    return (url, title, snippet)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def search_client():
    return FakeSearchClient()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def monitor(storage, search_client, notifier):
    return MonitorService(
        storage=storage,
        search_service=SearchService(search_client),
        notifier=notifier,
        scan_lock=LocalScanLock(wait_seconds=1.0),
    )
