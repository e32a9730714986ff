"""
Collectors.

- PlaceCrawler: one listing -> BusinessRecord (browser)
- MapSearchClient: rank acquisition over HTTP
- CompetitorDiscoveryService: ranked, enriched competitors within a time budget
"""

from placelens.collectors.competitors import (
    NO_KEYWORD_SENTINEL,
    CompetitorDiscoveryService,
    summarize_competitor_keywords,
)
from placelens.collectors.place_crawler import CrawlResult, PlaceCrawler
from placelens.collectors.search_client import MapSearchClient, PlaceMeta, normalize_search_coord

__all__ = [
    "NO_KEYWORD_SENTINEL",
    "CompetitorDiscoveryService",
    "CrawlResult",
    "MapSearchClient",
    "PlaceCrawler",
    "PlaceMeta",
    "normalize_search_coord",
    "summarize_competitor_keywords",
]
