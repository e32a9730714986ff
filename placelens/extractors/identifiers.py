"""
Place identifier parsing and canonical URL building.

Input may be a desktop map URL, a mobile place URL, a category URL
(/hairshop/123...), a query parameter form (?place=123...), a short link, or a
bare numeric id. Patterns are tried in order: path segments, then query
parameters, then a bare digit run.
"""

import re
from typing import Optional
from urllib.parse import urlparse

from placelens.core.exceptions import InvalidIdentifierError

MOBILE_HOST = "m.place.naver.com"
MOBILE_BASE = f"https://{MOBILE_HOST}"

PLACE_CATEGORIES = (
    "place",
    "hairshop",
    "restaurant",
    "cafe",
    "accommodation",
    "hospital",
    "pharmacy",
    "beauty",
    "bakery",
)

VALID_HOSTS = ("m.place.naver.com", "place.naver.com", "map.naver.com", "m.map.naver.com", "naver.me")
SHORT_LINK_HOSTS = ("naver.me",)

_CATEGORY_GROUP = "|".join(PLACE_CATEGORIES)

# (name, pattern); group 1 is the id
ID_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("entry_path", re.compile(r"/entry/place/(\d{5,})")),
    ("category_path", re.compile(rf"/(?:{_CATEGORY_GROUP})/(\d{{5,}})")),
    ("place_host_path", re.compile(r"place\.naver\.com/[^/?#]+/(\d{5,})")),
    ("query_param", re.compile(r"[?&](?:place|placeId|id)=(\d{5,})")),
    ("bare_id", re.compile(r"^\s*(\d{5,12})\s*$")),
    ("digit_run", re.compile(r"(\d{7,12})")),
)

COMPETITOR_ID = re.compile(r"^\d{7,12}$")
_SLUG = re.compile(r"^[a-z0-9_]+$", re.IGNORECASE)


def match_place_id(raw: str) -> Optional[tuple[str, str]]:
    """Return (place_id, pattern_name) for the first matching pattern, or None."""
    text = (raw or "").strip()
    if not text:
        return None
    for name, pattern in ID_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1), name
    return None


def extract_place_id(raw: str) -> str:
    """
    Extract a place identifier from arbitrary caller input.

    Raises:
        InvalidIdentifierError: If no pattern yields a long enough digit run
    """
    found = match_place_id(raw)
    if found is None:
        raise InvalidIdentifierError(raw or "")
    return found[0]


def is_short_link(raw: str) -> bool:
    """Short links carry no id; the browser must follow the redirect to learn it."""
    host = _hostname(raw)
    return host in SHORT_LINK_HOSTS


def is_valid_place_url(url: str) -> bool:
    host = _hostname(url)
    return host in VALID_HOSTS and re.search(r"\d{7,}", url or "") is not None


def is_valid_competitor_id(place_id: str) -> bool:
    return bool(COMPETITOR_ID.match(place_id or ""))


def canonical_mobile_url(place_id: str, slug: str = "place") -> str:
    return f"{MOBILE_BASE}/{slug or 'place'}/{place_id}"


def tab_url(place_id: str, tab: str, slug: Optional[str] = None) -> str:
    """Mobile URL of a listing tab, e.g. tab_url('123', 'review/visitor', 'hairshop')."""
    return f"{canonical_mobile_url(place_id, slug or 'place')}/{tab.strip('/')}"


def review_urls(place_id: str, slug: Optional[str] = None) -> list[str]:
    """Review-listing URLs in the order they are tried."""
    urls = [tab_url(place_id, "review/visitor")]
    if slug and slug != "place":
        urls.append(tab_url(place_id, "review/visitor", slug))
    urls.append(tab_url(place_id, "review"))
    if slug and slug != "place":
        urls.append(tab_url(place_id, "review", slug))
    return urls


def is_shell_url(url: str, place_id: str) -> bool:
    """True when the page path is still the bare /place/{id} shell shape."""
    try:
        path = urlparse(url).path.rstrip("/")
    except ValueError:
        return False
    return path == f"/place/{place_id}"


def detect_slug(url: str) -> Optional[str]:
    """Category slug of a redirected URL (/hairshop/123/home -> 'hairshop'); None for /place/."""
    try:
        segments = [s for s in urlparse(url).path.split("/") if s]
    except ValueError:
        return None
    if not segments or segments[0] == "place" or not _SLUG.match(segments[0]):
        return None
    return segments[0]


def normalize_input(raw: str) -> tuple[str, str]:
    """
    Normalize caller input to (place_id, canonical mobile URL).

    Raises:
        InvalidIdentifierError: If no identifier can be found
    """
    place_id = extract_place_id(raw)
    return place_id, canonical_mobile_url(place_id)


def _hostname(url: str) -> str:
    try:
        return (urlparse((url or "").strip()).hostname or "").lower()
    except ValueError:
        return ""


# Arbitrary text (search HTML, sniffed JSON) -> ids in order of appearance
_TEXT_ID_PATTERNS = (
    re.compile(rf"/(?:{_CATEGORY_GROUP})/(\d{{5,12}})"),
    re.compile(r"placeId[\"']?\s*[:=]\s*[\"'](\d{5,12})[\"']"),
    re.compile(r"[\"']id[\"']\s*:\s*[\"'](\d{5,12})[\"']"),
)
TEXT_ID_LIMIT = 120
TEXT_ID_ENOUGH = 10


def extract_place_ids_in_order(text: str) -> list[str]:
    """
    Candidate ids from free text, deduplicated, in order of first appearance.

    Category paths are scanned first; the looser `placeId` and `"id"` forms are
    only consulted while fewer than ten ids have been found.
    """
    ids: list[str] = []
    seen: set[str] = set()
    for n, pattern in enumerate(_TEXT_ID_PATTERNS):
        if n > 0 and len(ids) >= TEXT_ID_ENOUGH:
            break
        for match in pattern.finditer(text or ""):
            place_id = match.group(1)
            if place_id in seen or not is_valid_competitor_id(place_id):
                continue
            seen.add(place_id)
            ids.append(place_id)
            if len(ids) >= TEXT_ID_LIMIT:
                return ids
    return ids


def merge_in_order(*groups: list[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()
    for group in groups:
        for place_id in group:
            if place_id and place_id not in seen:
                seen.add(place_id)
                out.append(place_id)
    return out
