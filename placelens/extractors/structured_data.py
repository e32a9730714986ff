"""
Helpers for the JSON the target site embeds in its pages and XHR responses.

Field names move around between releases, so lookups are by key name at any
depth rather than by path. Raw HTML regex helpers cover the case where a blob
cannot be parsed as a whole.
"""

import html as html_lib
import json
import re
from typing import Any, Callable, Iterable, Iterator, Optional

NEXT_DATA_SCRIPT = re.compile(
    r"<script[^>]*id=[\"']__NEXT_DATA__[\"'][^>]*>(.*?)</script>",
    re.IGNORECASE | re.DOTALL,
)
_XSSI_PREFIX = re.compile(r"^\)\]\}',?\s*\n?")
_FOR_LOOP_PREFIX = re.compile(r"^for\s*\(\s*;\s*;\s*\)\s*;?\s*")
_OG_TITLE = re.compile(r"property=[\"']og:title[\"'][^>]*content=[\"']([^\"']{2,80})[\"']")

KEYWORD_ARRAY_KEYS = (
    "keywordList",
    "representKeywordList",
    "representKeywords",
    "keywords",
    "representativeKeywords",
    "representativeKeywordList",
)
NAME_KEYS = (
    "name",
    "placeName",
    "businessName",
    "bizName",
    "displayName",
    "storeName",
    "partnerName",
    "title",
)
ITEM_TEXT_KEYS = ("keyword", "name", "text", "title", "value", "label")
LOOSE_TEXT_KEYS = ITEM_TEXT_KEYS + ("displayName", "storeName")

BANNED_NAME = re.compile(r"^(광고|저장|길찾기|예약|전화|공유|블로그|리뷰|사진|홈|메뉴|가격)$", re.IGNORECASE)
_PLATFORM_NAME = re.compile(r"네이버\s*플레이스", re.IGNORECASE)
KEYWORD_NOISE = re.compile(r"(네이버|플레이스|예약|문의|할인|이벤트|가격|베스트|추천)")
LOOSE_KEYWORD_NOISE = re.compile(
    r"(네이버|플레이스|예약|문의|할인|이벤트|가격|베스트|추천|길찾기|전화|공유|블로그|리뷰|사진|홈|메뉴)"
)
_LOCALITY_HINT = re.compile(r"(역|동|구|로|길)")
_SERVICE_HINT = re.compile(r"(미용실|헤어|살롱|펌|염색|커트|컷|클리닉|카페|맛집|식당|브런치|디저트)")
_HANGUL = re.compile(r"[가-힣]")


# =============================================================================
# Parsing
# =============================================================================


def safe_json_parse(text: str) -> Optional[Any]:
    """Parse JSON after stripping anti-hijacking prefixes; None if it is not JSON."""
    body = (text or "").strip()
    if not body:
        return None
    body = _FOR_LOOP_PREFIX.sub("", _XSSI_PREFIX.sub("", body)).strip()
    if not body.startswith(("{", "[")):
        return None
    try:
        return json.loads(body)
    except ValueError:
        return None


def parse_next_data(html: str) -> Optional[Any]:
    """Return the page's embedded __NEXT_DATA__ blob, or None."""
    match = NEXT_DATA_SCRIPT.search(html or "")
    if not match:
        return None
    return safe_json_parse(match.group(1))


def unescape_json_text(raw: str) -> str:
    """Decode the escapes left in a string captured from raw JSON text."""
    return (
        (raw or "")
        .replace("\\n", "\n")
        .replace('\\"', '"')
        .replace("\\t", " ")
        .replace("\\r", "")
        .strip()
    )


def clean_text(value: Any) -> str:
    """Collapse whitespace, decode common entities and drop symbol noise."""
    text = str(value or "")
    text = text.replace("\\u003c", "<").replace("\\u003e", ">")
    text = html_lib.unescape(text)
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"[^\w가-힣\s\-·]", "", text)
    return text.strip()


def og_title(html: str) -> str:
    match = _OG_TITLE.search(html or "")
    return clean_text(match.group(1)) if match else ""


# =============================================================================
# Deep Traversal
# =============================================================================


def iter_dicts(node: Any) -> Iterator[dict]:
    """Yield every dict in a JSON tree, depth-first, in document order."""
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, dict):
            yield current
            stack.extend(reversed(list(current.values())))
        elif isinstance(current, list):
            stack.extend(reversed(current))


def deep_find(node: Any, predicate: Callable[[str, Any], bool]) -> Any:
    """First value whose (key, value) satisfies predicate, depth-first."""
    for mapping in iter_dicts(node):
        for key, value in mapping.items():
            if predicate(key, value):
                return value
    return None


def deep_find_string(node: Any, keys: Iterable[str]) -> Optional[str]:
    wanted = set(keys)
    value = deep_find(node, lambda k, v: k in wanted and isinstance(v, str) and v.strip() != "")
    return unescape_json_text(value) if value is not None else None


def deep_collect_strings(node: Any, keys: Iterable[str], min_length: int = 1) -> list[str]:
    """All non-empty strings held under any of `keys`, in document order."""
    wanted = set(keys)
    out = []
    for mapping in iter_dicts(node):
        for key, value in mapping.items():
            if key in wanted and isinstance(value, str):
                text = unescape_json_text(value)
                if len(text) >= min_length:
                    out.append(text)
    return out


def deep_collect_numbers(node: Any, keys: Iterable[str]) -> list[int]:
    """All integer-like values under any of `keys` (numbers or '1,234' strings)."""
    wanted = set(keys)
    out = []
    for mapping in iter_dicts(node):
        for key, value in mapping.items():
            if key not in wanted or isinstance(value, bool):
                continue
            if isinstance(value, (int, float)):
                out.append(int(value))
            elif isinstance(value, str) and re.fullmatch(r"[0-9,]+", value.strip()):
                out.append(int(value.replace(",", "")))
    return out


# =============================================================================
# Names and Keywords
# =============================================================================


def is_banned_name(name: str) -> bool:
    text = clean_text(name)
    if not text:
        return True
    if BANNED_NAME.match(text):
        return True
    return bool(_PLATFORM_NAME.search(text)) and len(text) <= 12


def find_name(node: Any) -> str:
    """First plausible business name under a name-like key."""
    for mapping in iter_dicts(node):
        for key in NAME_KEYS:
            value = mapping.get(key)
            if not isinstance(value, str):
                continue
            text = clean_text(value)
            if text and not is_banned_name(text) and 2 <= len(text) <= 60:
                return text
    return ""


def is_keyword_candidate(text: str, noise: re.Pattern = KEYWORD_NOISE) -> bool:
    return 2 <= len(text) <= 25 and not noise.search(text)


def _item_text(item: Any, fall_through: bool = False) -> str:
    if isinstance(item, str):
        return clean_text(item)
    if isinstance(item, dict):
        for key in ITEM_TEXT_KEYS:
            value = item.get(key)
            if isinstance(value, str) and clean_text(value):
                return clean_text(value)
        if fall_through:
            for value in item.values():
                if isinstance(value, str) and clean_text(value):
                    return clean_text(value)
    return ""


def find_keyword_array(
    node: Any,
    keys: Iterable[str] = KEYWORD_ARRAY_KEYS,
    unique: bool = True,
) -> list[str]:
    """
    Keyword strings from the first keyword-array key that yields any.

    Keys are tried in priority order; items may be strings or objects with a
    text-like field. Order is preserved; exact duplicates collapse unless
    `unique` is False (callers that score duplicates need the raw list).
    """
    for key in keys:
        for mapping in iter_dicts(node):
            values = mapping.get(key)
            if not isinstance(values, list):
                continue
            texts = [_item_text(v, fall_through=True) for v in values]
            texts = [t for t in texts if t and is_keyword_candidate(t)]
            if texts:
                return list(dict.fromkeys(texts)) if unique else texts
    return []


def keyword_chip_score(text: str) -> int:
    """Rank loose keyword candidates: locality and service words look like real keywords."""
    score = 0
    if _LOCALITY_HINT.search(text):
        score += 3
    if _SERVICE_HINT.search(text):
        score += 3
    if _HANGUL.search(text):
        score += 1
    return score


def find_keywords_loose(node: Any, limit: int = 5) -> list[str]:
    """Last-resort keyword scan over every text-like field, ranked by keyword_chip_score."""
    seen = set()
    found = []
    for mapping in iter_dicts(node):
        for key in LOOSE_TEXT_KEYS:
            value = mapping.get(key)
            if not isinstance(value, str):
                continue
            text = clean_text(value)
            if not text or not is_keyword_candidate(text, LOOSE_KEYWORD_NOISE):
                continue
            compact = re.sub(r"\s+", "", text)
            if compact in seen:
                continue
            seen.add(compact)
            found.append(text)
    return sorted(found, key=keyword_chip_score, reverse=True)[:limit]


def find_keyword_array_in_text(text: str) -> list[str]:
    """Regex fallback for keyword arrays inside unparseable HTML or script text."""
    pattern = re.compile(
        r"\"(?:%s)\"\s*:\s*(\[[\s\S]*?\])" % "|".join(KEYWORD_ARRAY_KEYS)
    )
    for match in pattern.finditer(text or ""):
        inside = match.group(1)
        parsed = safe_json_parse(inside)
        if isinstance(parsed, list):
            texts = [_item_text(v) for v in parsed]
            texts = [t for t in texts if t and is_keyword_candidate(t)]
            if texts:
                return list(dict.fromkeys(texts))
        strings = [clean_text(s) for s in re.findall(r"\"([^\"]{2,40})\"", inside)]
        strings = [s for s in strings if s]
        if strings:
            return list(dict.fromkeys(strings))
    return []


# =============================================================================
# Raw HTML Key Matching
# =============================================================================


def longest_string_value(html: str, keys: Iterable[str], min_length: int, max_length: int = 20000) -> str:
    """
    Longest decoded string held under any of `keys` anywhere in raw text.

    Longest-wins is a completeness heuristic: a longer match is assumed more
    complete, not proven to be the same field.
    """
    best = ""
    for key in keys:
        pattern = re.compile(r"\"%s\"\s*:\s*\"([^\"]{%d,%d})\"" % (re.escape(key), min_length, max_length))
        for match in pattern.finditer(html or ""):
            text = unescape_json_text(match.group(1))
            if len(text) >= min_length and len(text) > len(best):
                best = text
    return best


def first_string_value(html: str, patterns: Iterable[re.Pattern]) -> str:
    for pattern in patterns:
        match = pattern.search(html or "")
        if match and match.group(1).strip():
            return unescape_json_text(match.group(1)).replace("\n", " ").strip()
    return ""


def collect_numbers(text: str, patterns: Iterable[re.Pattern]) -> list[int]:
    """Every integer captured by group 1 of any pattern, thousands separators removed."""
    out = []
    for pattern in patterns:
        for match in pattern.finditer(text or ""):
            digits = match.group(1).replace(",", "")
            if digits.isdigit():
                out.append(int(digits))
    return out
