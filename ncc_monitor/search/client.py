"""Search backends that return raw results for a serial number.

Two backends are provided:
- Google Custom Search JSON API (when an API key and engine ID are configured)
- DuckDuckGo HTML results page (no credentials required)
"""

from __future__ import annotations

import asyncio
import html
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, quote_plus, urlparse

import httpx
from selectolax.lexbor import LexborHTMLParser

from ncc_monitor import metrics
from ncc_monitor.config import Settings
from ncc_monitor.db.models import SourceType
from ncc_monitor.errors import SearchUnavailableError

logger = logging.getLogger(__name__)

GOOGLE_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"
DUCKDUCKGO_SEARCH_URL = "https://html.duckduckgo.com/html/"
MARKETPLACE_SITE = "shopee.tw"

# Retryable exceptions (transport errors)
RETRYABLE_EXC = (
    httpx.ReadTimeout,
    httpx.ConnectTimeout,
    httpx.ConnectError,
    httpx.RemoteProtocolError,
    httpx.PoolTimeout,
)


@dataclass
class RawResult:
    """One search hit, tagged with the sub-query that produced it."""
    url: str
    title: str = ""
    snippet: str = ""
    source_type: SourceType = SourceType.GENERAL


def build_query(serial_number: str, scope: SourceType) -> str:
    """Build the search query for a serial number and scope."""
    if scope == SourceType.MARKETPLACE:
        return f'site:{MARKETPLACE_SITE} "{serial_number}"'
    return f'"{serial_number}"'


class SearchClient(ABC):
    """
    Base class for search backends.

    ``search`` returns an empty list when nothing matches and raises
    SearchUnavailableError when the backend cannot be reached or refuses
    the request.
    """

    name: str = "search"

    def __init__(
        self,
        timeout: float = 10.0,
        max_results: int = 10,
        max_attempts: int = 3,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self.max_results = max_results
        self.max_attempts = max(1, max_attempts)
        self._http_client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def search(self, serial_number: str, scope: SourceType) -> list[RawResult]:
        """
        Search for a serial number.

        Args:
            serial_number: Serial value to search for
            scope: Marketplace-scoped or general query

        Returns:
            Up to max_results RawResults tagged with ``scope``

        Raises:
            SearchUnavailableError: On transport, HTTP or quota failure
        """
        query = build_query(serial_number, scope)
        start = time.monotonic()
        try:
            hits = await self._search(query)
        except SearchUnavailableError:
            metrics.record_search(scope.value, False, time.monotonic() - start)
            raise
        metrics.record_search(scope.value, True, time.monotonic() - start)

        results = [
            RawResult(url=url, title=title, snippet=snippet, source_type=scope)
            for url, title, snippet in hits[: self.max_results]
        ]
        logger.debug(f"{self.name}: {len(results)} results for {query}")
        return results

    @abstractmethod
    async def _search(self, query: str) -> list[tuple[str, str, str]]:
        """Run a query and return (url, title, snippet) tuples."""

    async def _get(self, url: str, **kwargs) -> httpx.Response:
        """GET with retry on transport errors and 5xx responses."""
        client = await self._get_client()
        last_exc: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                resp = await client.get(url, timeout=self.timeout, **kwargs)
            except RETRYABLE_EXC as e:
                last_exc = e
                reason = f"transport error ({type(e).__name__})"
            except httpx.HTTPError as e:
                raise SearchUnavailableError(f"{self.name}: request failed: {e}") from e
            else:
                sc = resp.status_code
                if 200 <= sc < 300:
                    return resp
                # 4xx covers bad keys (401/403) and exhausted quota (429)
                if sc < 500:
                    raise SearchUnavailableError(f"{self.name}: HTTP {sc}")
                last_exc = SearchUnavailableError(f"{self.name}: HTTP {sc}")
                reason = f"server error {sc}"

            if attempt < self.max_attempts:
                sleep_s = (2 ** attempt) * 0.5 + random.random()
                logger.warning(
                    f"{self.name}: {reason}, retrying in {sleep_s:.1f}s "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                await asyncio.sleep(sleep_s)

        raise SearchUnavailableError(
            f"{self.name}: failed after {self.max_attempts} attempts"
        ) from last_exc


class GoogleSearchClient(SearchClient):
    """Google Custom Search JSON API backend."""

    name = "google"

    def __init__(self, api_key: str, search_engine_id: str, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.search_engine_id = search_engine_id

    async def _search(self, query: str) -> list[tuple[str, str, str]]:
        resp = await self._get(
            GOOGLE_SEARCH_URL,
            params={
                "key": self.api_key,
                "cx": self.search_engine_id,
                "q": query,
                "num": min(self.max_results, 10),
            },
        )
        try:
            data = resp.json()
        except ValueError as e:
            raise SearchUnavailableError(f"{self.name}: invalid JSON response") from e

        return [
            (item["link"], item.get("title") or "", item.get("snippet") or "")
            for item in data.get("items") or []
            if item.get("link")
        ]


class DuckDuckGoSearchClient(SearchClient):
    """DuckDuckGo HTML results page backend."""

    name = "duckduckgo"

    def __init__(self, user_agent: str, **kwargs):
        super().__init__(**kwargs)
        self.user_agent = user_agent

    async def _search(self, query: str) -> list[tuple[str, str, str]]:
        resp = await self._get(
            f"{DUCKDUCKGO_SEARCH_URL}?q={quote_plus(query)}",
            headers={
                "User-Agent": self.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "zh-TW,zh;q=0.9,en-US;q=0.8,en;q=0.7",
            },
        )
        return parse_duckduckgo_html(resp.text)


def extract_result_url(href: str) -> Optional[str]:
    """Unwrap a DuckDuckGo redirect link (``/l/?uddg=<url>``) to the target URL."""
    if not href:
        return None
    if "uddg=" in href:
        params = parse_qs(urlparse(href).query)
        target = params.get("uddg")
        return target[0] if target else None
    if href.startswith("http"):
        return href
    return None


def _clean_text(text: str) -> str:
    return html.unescape(text).replace("\xa0", " ").strip()


def parse_duckduckgo_html(page: str) -> list[tuple[str, str, str]]:
    """
    Parse a DuckDuckGo HTML results page.

    Args:
        page: Response body

    Returns:
        (url, title, snippet) tuples in page order
    """
    parser = LexborHTMLParser(page)
    hits: list[tuple[str, str, str]] = []

    for node in parser.css("div.result"):
        link = node.css_first("a.result__a")
        if link is None:
            continue
        url = extract_result_url(link.attributes.get("href") or "")
        if not url:
            continue
        snippet_node = node.css_first(".result__snippet")
        hits.append(
            (
                url,
                _clean_text(link.text()),
                _clean_text(snippet_node.text()) if snippet_node else "",
            )
        )

    return hits


def build_search_client(settings: Settings) -> SearchClient:
    """Choose the search backend once, at process start."""
    common = dict(
        timeout=settings.search_timeout_seconds,
        max_results=settings.search_max_results,
        max_attempts=settings.search_max_attempts,
    )
    if settings.google_api_key and settings.google_search_engine_id:
        logger.info("Search backend: Google Custom Search")
        return GoogleSearchClient(
            settings.google_api_key, settings.google_search_engine_id, **common
        )
    logger.info("Search backend: DuckDuckGo HTML")
    return DuckDuckGoSearchClient(settings.search_user_agent, **common)
