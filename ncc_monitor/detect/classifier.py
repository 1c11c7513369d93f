"""Marketplace URL classification and seller/product id extraction."""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

MARKETPLACE_DOMAINS = ("shopee.tw", "shopee.com")

# Shopee product URLs end with "-i.<shop_id>.<product_id>"
PRODUCT_PATTERN = re.compile(r"i\.(\d+)\.(\d+)")
PRODUCT_INFIX = "-i."


@dataclass(frozen=True)
class Classification:
    """Result of classifying a URL."""
    is_marketplace: bool = False
    shop_id: Optional[str] = None
    product_id: Optional[str] = None
    shop_name: Optional[str] = None

    @property
    def has_identifiers(self) -> bool:
        return bool(self.shop_id or self.product_id or self.shop_name)


NOT_MARKETPLACE = Classification()


def is_marketplace_url(url: str) -> bool:
    """Check whether a URL belongs to the tracked marketplace."""
    return any(domain in url for domain in MARKETPLACE_DOMAINS)


def classify(url: str) -> Classification:
    """
    Classify a URL and extract marketplace identifiers when possible.

    Product URLs (``.../name-i.<shop>.<product>``) yield shop and product ids.
    A single-segment path yields a shop name. Anything else on the
    marketplace domain is reported as marketplace without identifiers.
    Never raises: unparsable input classifies as non-marketplace.

    Args:
        url: Source URL from a search result

    Returns:
        Classification
    """
    if not isinstance(url, str):
        return NOT_MARKETPLACE

    try:
        parsed = urlparse(url)
    except ValueError:
        return NOT_MARKETPLACE
    if not parsed.scheme or not parsed.netloc:
        return NOT_MARKETPLACE

    if not is_marketplace_url(url):
        return NOT_MARKETPLACE

    product_match = PRODUCT_PATTERN.search(url)
    if product_match:
        return Classification(
            is_marketplace=True,
            shop_id=product_match.group(1),
            product_id=product_match.group(2),
        )

    segments = [part for part in parsed.path.split("/") if part]
    if len(segments) == 1 and PRODUCT_INFIX not in segments[0]:
        return Classification(is_marketplace=True, shop_name=segments[0])

    return Classification(is_marketplace=True)
