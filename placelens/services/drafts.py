"""
Draft parsing and post-processing.

Turns raw generation output into an ImprovementDraft and forces it into the
shape the scorer expects: text clamped to the industry maximum, keywords
normalized, deduplicated and padded to exactly the required count.
"""

import json
import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from pydantic import ValidationError

from placelens.config.industry_schema import IndustryConfig
from placelens.core.exceptions import GenerationParseError
from placelens.models.schemas import BusinessRecord, ImprovementDraft

MAX_KEYWORD_LENGTH = 25
CLAMP_MIN_FRACTION = 0.6

KEYWORD_SYNONYMS = {
    "헤어샵": "미용실",
    "헤어숍": "미용실",
    "헤어살롱": "미용실",
    "파마": "펌",
    "컷트": "커트",
    "까페": "카페",
    "커피숍": "카페",
    "커피전문점": "카페",
    "레스토랑": "식당",
}

_FIELD_ALIASES = {
    "description": "description",
    "directions": "directions",
    "keywords": "keywords",
    "recommendedKeywords": "keywords",
    "recommended_keywords": "keywords",
    "reviewGuidance": "review_request_scripts",
    "reviewRequestScripts": "review_request_scripts",
    "review_request_scripts": "review_request_scripts",
    "reviewReplyTemplates": "review_reply_templates",
    "review_reply_templates": "review_reply_templates",
    "photoGuidance": "photo_checklist",
    "photoChecklist": "photo_checklist",
    "photo_checklist": "photo_checklist",
    "competitorInsight": "competitor_insight",
    "competitor_insight": "competitor_insight",
    "priceGuidance": "price_guidance",
    "price_guidance": "price_guidance",
}
_LIST_FIELDS = {"review_request_scripts", "review_reply_templates", "photo_checklist"}
_TEXT_FIELDS = {"description", "directions", "competitor_insight", "price_guidance"}

_SENTENCE_END = re.compile(r"(다\.|요\.|[.!?。])\s")
_TOKEN_SPLIT = re.compile(r"[\s,()\[\]/·]+")
_SUFFIX_RANK = {"역": 0, "동": 1, "로": 2, "길": 2, "구": 3}


# =============================================================================
# Parsing
# =============================================================================


def extract_json_object(text: str) -> dict[str, Any]:
    """
    Return the first balanced JSON object embedded in text.

    Leading and trailing prose, markdown fences and braces inside string
    literals are tolerated. Candidates that balance but fail to decode are
    skipped in favour of the next opening brace.

    Raises:
        GenerationParseError: If no decodable object is found
    """
    if not text:
        raise GenerationParseError("Empty generation response")

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    try:
                        value = json.loads(text[start : i + 1])
                    except json.JSONDecodeError:
                        break
                    if isinstance(value, dict):
                        return value
                    break
        start = text.find("{", start + 1)

    raise GenerationParseError("No JSON object found in generation response", text)


def _as_lines(value: Any) -> list[str]:
    if isinstance(value, str):
        return [line.strip(" -•\t") for line in value.splitlines() if line.strip(" -•\t")]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


def parse_draft(text: str) -> ImprovementDraft:
    """
    Parse raw generation output into a draft.

    Accepts both snake_case fields and the camelCase names used in the prompt
    schema, optionally wrapped in an "improvements" object.

    Raises:
        GenerationParseError: If the output has no usable object or fields
    """
    data = extract_json_object(text)
    body = data.get("improvements") if isinstance(data.get("improvements"), dict) else data
    if body is not data:
        # Top-level recommendations may sit beside the wrapper
        body = {**{k: v for k, v in data.items() if k != "improvements"}, **body}

    fields: dict[str, Any] = {}
    for key, value in body.items():
        target = _FIELD_ALIASES.get(key)
        if target is None or value in (None, "", []):
            continue
        if target == "keywords" and key != "keywords" and body.get("keywords"):
            continue
        if target in _LIST_FIELDS:
            fields[target] = _as_lines(value)
        elif target in _TEXT_FIELDS:
            fields[target] = "\n".join(_as_lines(value)) if isinstance(value, list) else str(value).strip()
        else:
            fields[target] = value

    if not any(fields.get(name) for name in ("description", "directions", "keywords")):
        raise GenerationParseError("Generation response has no description, directions or keywords", text)

    try:
        return ImprovementDraft(**fields)
    except ValidationError as e:
        raise GenerationParseError(f"Generation response failed validation: {e.error_count()} error(s)", text) from e


# =============================================================================
# Keywords
# =============================================================================


def normalize_keyword(keyword: str) -> str:
    """NFKC-normalize, drop hashtags and collapse spacing, then map synonym spellings."""
    text = unicodedata.normalize("NFKC", keyword or "").strip().lstrip("#").strip()
    text = re.sub(r"\s+", " ", text)
    for variant, canonical in KEYWORD_SYNONYMS.items():
        if variant in text:
            text = text.replace(variant, canonical)
    return text


def keyword_key(keyword: str) -> str:
    """Identity used for duplicate detection: spacing and case are ignored."""
    return normalize_keyword(keyword).replace(" ", "").lower()


def dedupe_keywords(keywords: Iterable[str], stop_words: Sequence[str] = ()) -> list[str]:
    seen: set[str] = set()
    stops = {keyword_key(word) for word in stop_words}
    result = []
    for raw in keywords:
        keyword = normalize_keyword(str(raw))
        key = keyword_key(keyword)
        if not key or len(keyword) > MAX_KEYWORD_LENGTH or key in seen or key in stops:
            continue
        seen.add(key)
        result.append(keyword)
    return result


def keyword_derivatives(keywords: Sequence[str], intent_words: Sequence[str]) -> list[str]:
    """Intent-suffixed variants: '역삼동 미용실' -> '역삼동 미용실 추천', ..."""
    derived = []
    for word in intent_words:
        for keyword in keywords:
            if word not in keyword:
                derived.append(f"{keyword} {word}")
    return derived


def pad_keywords(
    keywords: Sequence[str],
    count: int,
    candidates: Sequence[str] = (),
    intent_words: Sequence[str] = (),
    stop_words: Sequence[str] = (),
) -> list[str]:
    """
    Force the keyword list to exactly count entries.

    Existing keywords are kept first (after normalization and dedupe), then
    candidates fill the gap, then intent-suffixed derivatives of what is
    already there. The result is shorter only when there is nothing at all to
    derive from.
    """
    result = dedupe_keywords(keywords, stop_words)[:count]
    if len(result) < count:
        result = dedupe_keywords([*result, *candidates], stop_words)[:count]
    if len(result) < count:
        result = dedupe_keywords([*result, *keyword_derivatives(result, intent_words)], stop_words)[:count]
    return result


# =============================================================================
# Text
# =============================================================================


def clamp_text(text: str, max_length: int) -> str:
    """Cut text to max_length, preferring a line or sentence boundary."""
    body = (text or "").strip()
    if len(body) <= max_length:
        return body

    window = body[:max_length]
    floor = int(max_length * CLAMP_MIN_FRACTION)
    cut = window.rfind("\n")
    if cut < floor:
        ends = [m.end(1) for m in _SENTENCE_END.finditer(body[: max_length + 1])]
        cut = ends[-1] if ends else -1
    if cut < floor:
        cut = max_length
    return window[:cut].rstrip()


# =============================================================================
# Constraints
# =============================================================================


def locality_hints(name: str, address: str, suffixes: Sequence[str]) -> list[str]:
    """
    Place-name tokens from the listing's own name and address, best first.

    Stations rank above neighborhoods, then streets, then districts. A branch
    name such as '강남역점' yields the station '강남역'.
    """
    found = []
    for raw in _TOKEN_SPLIT.split(f"{name or ''} {address or ''}"):
        token = raw.strip()
        if token.endswith("점") and token[:-1].endswith("역"):
            token = token[:-1]
        if len(token) < 2 or any(ch.isdigit() for ch in token):
            continue
        if any(token.endswith(suffix) and len(token) > len(suffix) for suffix in suffixes):
            found.append(token)
    ordered = list(dict.fromkeys(found))
    return sorted(ordered, key=lambda t: _SUFFIX_RANK.get(t[-1], len(_SUFFIX_RANK)))


def primary_locality(name: str, address: str, suffixes: Sequence[str]) -> str:
    hints = locality_hints(name, address, suffixes)
    return hints[0] if hints else ""


@dataclass(frozen=True)
class DraftConstraints:
    """What a draft must satisfy to score well for one listing."""

    description_min: int
    description_good: int
    description_max: int
    directions_min: int
    directions_good: int
    directions_max: int
    keyword_count: int
    vocabulary: tuple[str, ...]
    signal_words: tuple[str, ...]
    intent_words: tuple[str, ...]
    stop_words: tuple[str, ...]
    locality_hints: tuple[str, ...]

    @property
    def locality(self) -> str:
        return self.locality_hints[0] if self.locality_hints else ""

    @property
    def station(self) -> str:
        return next((hint for hint in self.locality_hints if hint.endswith("역")), "")

    def as_prompt_dict(self) -> dict[str, Any]:
        return {
            "description_length": [self.description_good, self.description_max],
            "directions_length": [self.directions_good, self.directions_max],
            "keyword_count": self.keyword_count,
            "required_vocabulary": list(self.vocabulary),
            "wayfinding_words": list(self.signal_words),
            "intent_words": list(self.intent_words),
            "avoid_keywords": list(self.stop_words),
            "locality_hints": list(self.locality_hints),
        }


def build_constraints(record: BusinessRecord, config: IndustryConfig) -> DraftConstraints:
    return DraftConstraints(
        description_min=config.description.min_length,
        description_good=config.description.good_length,
        description_max=config.description.max_length,
        directions_min=config.directions.min_length,
        directions_good=config.directions.good_length,
        directions_max=config.directions.max_length,
        keyword_count=config.keywords.target_count,
        vocabulary=config.keywords.vocabulary,
        signal_words=config.directions.signal_words,
        intent_words=config.keywords.intent_words,
        stop_words=config.keywords.stop_words,
        locality_hints=tuple(
            locality_hints(record.name, record.address, config.keywords.locality_suffixes)
        ),
    )


def seed_keywords(record: BusinessRecord, constraints: DraftConstraints) -> list[str]:
    """Keyword candidates from the locality and industry vocabulary, best first."""
    vocab = list(constraints.vocabulary) or [""]
    intents = list(constraints.intent_words) or [""]
    seeds = []
    places = list(constraints.locality_hints[:2])
    for place in places:
        seeds.append(f"{place} {vocab[0]}".strip())
    if places:
        seeds.append(f"{places[0]} {vocab[0]} {intents[0]}".strip())
        for term in vocab[1:3]:
            seeds.append(f"{places[0]} {term}")
    seeds.extend(record.keywords)
    for term in vocab[1:4]:
        seeds.append(f"{term} {intents[min(1, len(intents) - 1)]}".strip())
    seeds.extend(vocab)
    return dedupe_keywords(seeds, constraints.stop_words)


# =============================================================================
# Post-processing
# =============================================================================


def postprocess_draft(
    draft: ImprovementDraft,
    constraints: DraftConstraints,
    candidates: Sequence[str] = (),
) -> ImprovementDraft:
    """Clamp text and force exactly keyword_count normalized keywords."""
    keywords = pad_keywords(
        draft.keywords,
        constraints.keyword_count,
        candidates,
        constraints.intent_words,
        constraints.stop_words,
    )
    return draft.model_copy(
        update={
            "description": clamp_text(draft.description, constraints.description_max),
            "directions": clamp_text(draft.directions, constraints.directions_max),
            "keywords": keywords,
        }
    )


def merge_missing(draft: ImprovementDraft, default: Optional[ImprovementDraft]) -> ImprovementDraft:
    """Fill fields the generator left empty from the templated default."""
    if default is None:
        return draft
    update = {
        name: getattr(default, name)
        for name in ImprovementDraft.model_fields
        if not getattr(draft, name) and getattr(default, name)
    }
    return draft.model_copy(update=update) if update else draft
