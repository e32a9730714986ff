"""HTTP client for the target site's search surfaces.

Rank acquisition prefers the map's internal `allSearch` JSON endpoint, which
returns place stubs in relevance order. The web search `where=place` page and
the mobile place search page are plain-HTML fallbacks. None of these are
documented APIs: every response is validated loosely and unknown fields are
ignored.
"""

import random
import re
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from placelens.browser.session import ACCEPT_LANGUAGE, DESKTOP_USER_AGENTS
from placelens.config.settings import DEFAULT_SEARCH_COORD, get_settings
from placelens.core.circuit_breaker import get_circuit_breaker
from placelens.core.exceptions import (
    SearchEndpointError,
    SearchRateLimitError,
    SearchUnavailableError,
)
from placelens.extractors.identifiers import (
    PLACE_CATEGORIES,
    extract_place_ids_in_order,
    is_valid_competitor_id,
)
from placelens.extractors.structured_data import clean_text, is_banned_name
from placelens.models.schemas import CompetitorSource

logger = structlog.get_logger(__name__)

# Circuit breaker for the map search JSON endpoint
_all_search_breaker = get_circuit_breaker("map_all_search", failure_threshold=5, recovery_timeout=60)


# =============================================================================
# Constants
# =============================================================================

ALL_SEARCH_URL = "https://map.naver.com/p/api/search/allSearch"
WHERE_PLACE_URL = "https://search.naver.com/search.naver"
MOBILE_PLACE_SEARCH_URL = "https://m.place.naver.com/search"
MOBILE_MAP_SEARCH_URL = "https://m.map.naver.com/search2/search.naver"

MAP_ORIGIN = "https://map.naver.com"
SEARCH_REFERER = "https://search.naver.com/"
MOBILE_PLACE_REFERER = "https://m.place.naver.com/"

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
JSON_ACCEPT = "application/json, text/plain, */*"

MAX_HTML_METAS = 12
NAME_WINDOW = 900

_COORD_PAIR = re.compile(r"^(-?\d+(?:\.\d+)?)[;,](-?\d+(?:\.\d+)?)$")
_PLACE_LINK = re.compile(
    r"https?://(?:m\.place\.naver\.com|pcmap\.place\.naver\.com|place\.naver\.com)/(?:%s)/(\d{5,12})"
    % "|".join(PLACE_CATEGORIES)
)
_TITLE_ATTR = re.compile(r"title=[\"']([^\"']{2,80})[\"']", re.IGNORECASE)
_ARIA_ATTR = re.compile(r"aria-label=[\"']([^\"']{2,80})[\"']", re.IGNORECASE)
_TEXT_NODE = re.compile(r">\s*([가-힣A-Za-z0-9][^<>]{1,50})\s*<")


@dataclass(frozen=True)
class PlaceMeta:
    """An unverified candidate from rank acquisition."""

    place_id: str
    name: str = ""
    source: CompetitorSource = CompetitorSource.MAP_RANK


# =============================================================================
# Pure helpers
# =============================================================================


def normalize_search_coord(raw: Optional[str]) -> str:
    """
    Normalize a coordinate to the endpoint's 'lng;lat' form.

    Accepts 'lng;lat', 'lng,lat' or either in swapped order (longitude has the
    larger magnitude in Korea). Anything else falls back to Seoul City Hall.
    """
    cleaned = re.sub(r"\s+", "", raw or "")
    match = _COORD_PAIR.match(cleaned)
    if not match:
        return DEFAULT_SEARCH_COORD
    first, second = float(match.group(1)), float(match.group(2))
    if abs(first) > abs(second):
        return f"{match.group(1)};{match.group(2)}"
    return f"{match.group(2)};{match.group(1)}"


def map_referer(query: str) -> str:
    return f"{MAP_ORIGIN}/p/search/{quote(query)}"


def ids_from_all_search(data: Any) -> list[str]:
    """Place ids from an allSearch payload, in rank order."""
    if not isinstance(data, dict):
        return []
    place = (data.get("result") or {}).get("place") or {}
    items = place.get("list") or place.get("items") or []
    ids: list[str] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        place_id = str(item.get("id") or item.get("placeId") or "").strip()
        if is_valid_competitor_id(place_id) and place_id not in ids:
            ids.append(place_id)
    return ids


def _name_near(html: str, position: int) -> str:
    chunk = html[max(0, position - NAME_WINDOW): position + NAME_WINDOW]
    for pattern in (_TITLE_ATTR, _ARIA_ATTR, _TEXT_NODE):
        for match in pattern.finditer(chunk):
            text = clean_text(match.group(1))
            if text and not is_banned_name(text):
                return text
    return ""


def metas_from_search_html(html: str, limit: int = MAX_HTML_METAS) -> list[PlaceMeta]:
    """Candidates from a `where=place` results page, with names read around each link."""
    metas: list[PlaceMeta] = []
    seen: set[str] = set()
    for match in _PLACE_LINK.finditer(html or ""):
        place_id = match.group(1)
        if place_id in seen or not is_valid_competitor_id(place_id):
            continue
        seen.add(place_id)
        metas.append(
            PlaceMeta(place_id, _name_near(html, match.start()), CompetitorSource.SEARCH_HTML)
        )
        if len(metas) >= limit:
            break
    return metas


# =============================================================================
# Search Client
# =============================================================================


class MapSearchClient:
    """Async client for rank acquisition over plain HTTP.

    Example:
        async with MapSearchClient() as client:
            ids = await client.all_search_ids("성수역 미용실", limit=8)
    """

    def __init__(
        self,
        search_coord: Optional[str] = None,
        boundary: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            search_coord: Map coordinate; defaults to settings
            boundary: Optional map boundary; defaults to settings
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        settings = get_settings()
        self.search_coord = normalize_search_coord(search_coord or settings.search_coord)
        self.boundary = (boundary if boundary is not None else settings.search_boundary) or ""
        self._timeout = timeout or settings.search_request_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "MapSearchClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                headers={"Accept-Language": ACCEPT_LANGUAGE},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @retry(
        retry=retry_if_exception_type(SearchRateLimitError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _get(
        self,
        endpoint: str,
        url: str,
        params: dict[str, str],
        headers: dict[str, str],
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """GET with a rotating desktop user agent.

        Raises:
            SearchRateLimitError: On HTTP 429 (retried with backoff)
            SearchUnavailableError: On timeouts, transport errors and 5xx
            SearchEndpointError: On other non-2xx responses
        """
        client = await self._ensure_client()
        request_headers = {"User-Agent": random.choice(DESKTOP_USER_AGENTS), **headers}
        try:
            response = await client.get(
                url,
                params=params,
                headers=request_headers,
                timeout=timeout if timeout is not None else self._timeout,
            )
        except httpx.TimeoutException as e:
            raise SearchUnavailableError(endpoint, f"Request timeout: {e}", {"url": url}) from e
        except httpx.RequestError as e:
            raise SearchUnavailableError(endpoint, f"Request failed: {e}", {"url": url}) from e

        if response.status_code == 429:
            logger.warning("search_rate_limited", endpoint=endpoint)
            raise SearchRateLimitError(endpoint, "Rate limited", {"status_code": 429})
        if response.status_code >= 500:
            raise SearchUnavailableError(
                endpoint,
                f"HTTP {response.status_code}",
                {"status_code": response.status_code, "body": response.text[:220]},
            )
        if response.status_code >= 400:
            raise SearchEndpointError(
                endpoint,
                f"HTTP {response.status_code}",
                {"status_code": response.status_code, "body": response.text[:220]},
            )
        return response

    # -------------------------------------------------------------------------
    # allSearch JSON
    # -------------------------------------------------------------------------

    async def _all_search_once(
        self, query: str, use_boundary: bool, timeout: Optional[float]
    ) -> list[str]:
        params = {
            "query": query,
            "type": "all",
            "page": "1",
            "searchCoord": self.search_coord,
        }
        if use_boundary and self.boundary:
            params["boundary"] = self.boundary
        response = await self._get(
            "all_search",
            ALL_SEARCH_URL,
            params,
            {"Accept": JSON_ACCEPT, "Referer": map_referer(query), "Origin": MAP_ORIGIN},
            timeout=timeout,
        )
        try:
            data = response.json()
        except ValueError:
            logger.warning("all_search_non_json", preview=response.text[:120])
            return []
        return ids_from_all_search(data)

    async def all_search_ids(
        self, query: str, limit: int, timeout: Optional[float] = None
    ) -> list[str]:
        """Ranked place ids from the JSON endpoint; [] when it fails or is circuit-open.

        Tried with the configured boundary first, then without it.
        """
        query = (query or "").strip()
        if not query:
            return []
        if not _all_search_breaker.can_execute():
            logger.warning(
                "all_search_circuit_open",
                recovery_time=_all_search_breaker.time_until_recovery(),
            )
            return []

        attempts = (True, False) if self.boundary else (False,)
        for use_boundary in attempts:
            try:
                ids = await self._all_search_once(query, use_boundary, timeout)
            except SearchEndpointError as e:
                await _all_search_breaker.record_failure()
                logger.warning(
                    "all_search_failed",
                    query=query,
                    boundary=use_boundary,
                    error=e.message,
                    error_type=type(e).__name__,
                )
                continue
            await _all_search_breaker.record_success()
            if ids:
                logger.info("all_search_ranked", query=query, count=len(ids))
                return ids[:limit]
        return []

    # -------------------------------------------------------------------------
    # HTML fallbacks
    # -------------------------------------------------------------------------

    async def fetch_html(
        self, endpoint: str, url: str, params: dict[str, str], referer: str, timeout: Optional[float] = None
    ) -> str:
        response = await self._get(
            endpoint, url, params, {"Accept": HTML_ACCEPT, "Referer": referer}, timeout=timeout
        )
        return response.text

    async def where_place_metas(self, query: str, timeout: Optional[float] = None) -> list[PlaceMeta]:
        """Candidates (with names) from the web search place tab; [] on failure."""
        try:
            html = await self.fetch_html(
                "where_place", WHERE_PLACE_URL, {"where": "place", "query": query}, SEARCH_REFERER, timeout
            )
        except SearchEndpointError as e:
            logger.warning("where_place_failed", query=query, error=e.message)
            return []
        return metas_from_search_html(html)

    async def mobile_place_search_metas(
        self, query: str, limit: int, timeout: Optional[float] = None
    ) -> list[PlaceMeta]:
        """Last-resort ids from the mobile place search page; [] on failure."""
        try:
            html = await self.fetch_html(
                "place_search", MOBILE_PLACE_SEARCH_URL, {"query": query}, MOBILE_PLACE_REFERER, timeout
            )
        except SearchEndpointError as e:
            logger.warning("place_search_failed", query=query, error=e.message)
            return []
        return [
            PlaceMeta(place_id, "", CompetitorSource.PLACE_SEARCH)
            for place_id in extract_place_ids_in_order(html)[:limit]
        ]
