"""Search service combining marketplace-scoped and general queries."""

import logging

from ncc_monitor.db.models import SearchType, SourceType
from ncc_monitor.detect.classifier import is_marketplace_url
from ncc_monitor.search.client import RawResult, SearchClient

logger = logging.getLogger(__name__)


def includes_marketplace(search_type: SearchType) -> bool:
    return search_type in (SearchType.ALL, SearchType.MARKETPLACE)


def includes_general(search_type: SearchType) -> bool:
    return search_type in (SearchType.ALL, SearchType.GENERAL)


class SearchService:
    """Runs the sub-queries a search type calls for and merges their results."""

    def __init__(self, client: SearchClient):
        self.client = client

    async def gather(self, serial_number: str, search_type: SearchType) -> list[RawResult]:
        """
        Collect raw results for a serial number.

        Marketplace results come first. General results that point at the
        marketplace are dropped so marketplace listings are always attributed
        to the marketplace query.

        Args:
            serial_number: Serial value to search for
            search_type: all, marketplace or general

        Returns:
            Merged results in collaborator order

        Raises:
            SearchUnavailableError: If any sub-query fails
        """
        results: list[RawResult] = []

        if includes_marketplace(search_type):
            results.extend(await self.client.search(serial_number, SourceType.MARKETPLACE))

        if includes_general(search_type):
            general = await self.client.search(serial_number, SourceType.GENERAL)
            filtered = [r for r in general if not is_marketplace_url(r.url)]
            if len(filtered) != len(general):
                logger.debug(
                    f"Dropped {len(general) - len(filtered)} marketplace URLs "
                    f"from general results for {serial_number}"
                )
            results.extend(filtered)

        return results

    async def close(self):
        await self.client.close()
