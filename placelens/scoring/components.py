"""
Category scorers.

Each scorer is a pure function of the record fields it reads and one
IndustryConfig section, returning a CategoryScore on the 0-100 scale. Absent
data (None) pulls a category to a fixed neutral value; confirmed-empty data
(0, "") scores 0.
"""

import math
import re
from typing import Iterable, Optional, Sequence

from placelens.config.industry_schema import KeywordRule, PriceRule, TextRule
from placelens.models.schemas import CategoryScore, Grade, MenuItem

NEUTRAL_SCORE = 60
NEUTRAL_RECENCY = 60

_NUMERIC_PRICE = re.compile(r"[0-9]")
_CURRENCY = re.compile(r"(원|₩)")
_INQUIRY_PRICE = re.compile(r"문의|변동|상담|시세", re.IGNORECASE)
_TOKEN_SPLIT = re.compile(r"[\s,()\[\]/·]+")


# =============================================================================
# Helpers
# =============================================================================


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (no banker's rounding)."""
    return int(math.floor(value + 0.5 + 1e-9))


def grade_for(score: float) -> Grade:
    if score >= 95:
        return Grade.S
    if score >= 85:
        return Grade.A
    if score >= 70:
        return Grade.B
    if score >= 55:
        return Grade.C
    if score >= 40:
        return Grade.D
    return Grade.F


def _result(score: float, issues: list[str], breakdown: dict[str, float]) -> CategoryScore:
    value = round_half_up(clamp(score))
    return CategoryScore(
        score=value,
        grade=grade_for(value),
        issues=issues,
        breakdown={k: round(v, 4) for k, v in breakdown.items()},
    )


def length_ratio(text: str, min_length: int, good_length: int) -> float:
    """Piecewise length curve: 0.7 * len/min below min, 0.7 -> 1.0 up to good, 1.0 after."""
    length = len((text or "").strip())
    if length <= 0:
        return 0.0
    if length < min_length:
        return 0.7 * length / min_length
    if length >= good_length:
        return 1.0
    t = (length - min_length) / (good_length - min_length)
    return 0.7 + 0.3 * t


def structure_ratio(text: str) -> float:
    """Reward 3+ paragraphs, penalize fragment spam (average line under 25 chars)."""
    body = (text or "").strip()
    if not body:
        return 0.0
    lines = [line.strip() for line in re.split(r"\n+", body) if line.strip()]
    ratio = 0.7
    if len(lines) >= 3:
        ratio += 0.2
    if len(body) / max(1, len(lines)) < 25:
        ratio -= 0.15
    return clamp(ratio, 0.4, 1.0)


def keyword_boost(text: str, keywords: Sequence[str], max_boost: float) -> tuple[float, list[str]]:
    """Points for the fraction of the listing's keywords found in the text."""
    body = (text or "").lower()
    wanted = [k for k in keywords if k and k.strip()]
    if not body or not wanted:
        return 0.0, []
    hits = [k for k in wanted if k.strip().lower() in body]
    return clamp(len(hits) / len(wanted) * max_boost, 0.0, max_boost), hits


def signal_ratio(text: str, signals: Sequence[str]) -> tuple[float, list[str]]:
    """min(hits, 8) / min(8, len(signals)), so one exhaustive list cannot saturate."""
    body = text or ""
    if not body.strip() or not signals:
        return 0.0, []
    hits = [s for s in signals if s in body]
    return min(len(hits), 8) / min(8, len(signals)), hits


def log_count_score(count: int, target: int) -> float:
    """log10(count+1) / log10(target+1), clamped to [0, 1] and scaled to 100."""
    if count <= 0:
        return 0.0
    return 100.0 * clamp(math.log10(count + 1) / math.log10(target + 1), 0.0, 1.0)


def recency_step(recent: int, total: int) -> float:
    ratio = clamp(recent / total, 0.0, 1.0) if total > 0 else 0.0
    if ratio >= 0.5:
        return 95
    if ratio >= 0.3:
        return 80
    if ratio >= 0.1:
        return 50
    return 30


def locality_tokens(address: str, suffixes: Iterable[str], name: str = "") -> set[str]:
    """
    Place-name tokens from the listing's own address and name.

    '서울 강남구 역삼동' -> {'강남구', '강남', '역삼동', '역삼', ...}. From the name
    only suffixed place tokens count, so a branch name '강남역점' adds '강남역'.
    """
    suffixes = tuple(suffixes)
    candidates = [raw.strip() for raw in _TOKEN_SPLIT.split(address or "")]
    for raw in _TOKEN_SPLIT.split(name or ""):
        token = raw.strip()
        if token.endswith("점") and token[:-1].endswith("역"):
            token = token[:-1]
        if any(token.endswith(suffix) and len(token) > len(suffix) for suffix in suffixes):
            candidates.append(token)

    tokens: set[str] = set()
    for token in candidates:
        if len(token) < 2 or any(ch.isdigit() for ch in token):
            continue
        tokens.add(token)
        for suffix in suffixes:
            if token.endswith(suffix) and len(token) - len(suffix) >= 2:
                tokens.add(token[: -len(suffix)])
    return tokens


def _step(hits: int, table: Sequence[int]) -> int:
    return table[min(hits, len(table) - 1)]


# =============================================================================
# Category Scorers
# =============================================================================


def score_description(text: str, keywords: Sequence[str], rule: TextRule) -> CategoryScore:
    body = (text or "").strip()
    if not body:
        return _result(0, ["Description is empty"], {"length": 0, "structure": 0, "keyword_boost": 0})

    length = length_ratio(body, rule.min_length, rule.good_length)
    structure = structure_ratio(body)
    boost, hits = keyword_boost(body, keywords, rule.keyword_boost_max)

    issues = []
    if len(body) < rule.min_length:
        issues.append(f"Description too short ({len(body)}/{rule.min_length} chars)")
    elif len(body) < rule.good_length:
        issues.append(f"Description could be longer ({len(body)}/{rule.good_length} chars)")
    if structure < 0.9:
        issues.append("Description lacks paragraph structure")
    if keywords and not hits:
        issues.append("None of the listing keywords appear in the description")

    score = 100 * (0.6 * length + 0.25 * structure) + boost
    return _result(score, issues, {"length": length, "structure": structure, "keyword_boost": boost})


def score_directions(text: str, keywords: Sequence[str], rule: TextRule) -> CategoryScore:
    body = (text or "").strip()
    if not body:
        return _result(0, ["Directions are empty"], {"length": 0, "signals": 0, "keyword_boost": 0})

    length = length_ratio(body, rule.min_length, rule.good_length)
    signals, hits = signal_ratio(body, rule.signal_words)
    boost, _ = keyword_boost(body, keywords, rule.keyword_boost_max)

    issues = []
    if len(body) < rule.min_length:
        issues.append(f"Directions too short ({len(body)}/{rule.min_length} chars)")
    if signals < 0.5:
        missing = [s for s in rule.signal_words if s not in hits][:4]
        issues.append(f"Few wayfinding details; consider mentioning {', '.join(missing)}")

    score = 100 * (0.55 * length + 0.45 * signals) + boost
    return _result(score, issues, {"length": length, "signals": signals, "keyword_boost": boost})


def score_keywords(
    keywords: Sequence[str],
    raw_keywords: Optional[Sequence[str]],
    address: str,
    rule: KeywordRule,
    name: str = "",
) -> CategoryScore:
    cleaned = [k.strip() for k in keywords if k and k.strip()]
    if not cleaned:
        return _result(0, ["No keywords declared"], {"count": 0})

    unique = {k.lower() for k in cleaned}
    count = 50 * min(1.0, len(unique) / rule.target_count)

    dup_source = [k.strip().lower() for k in (raw_keywords if raw_keywords is not None else cleaned) if k and k.strip()]
    duplicates = len(dup_source) - len(set(dup_source))
    dedupe = max(0, 10 - 5 * duplicates)

    places = locality_tokens(address, rule.locality_suffixes, name)
    locality_hits = sum(1 for k in cleaned if any(token in k for token in places))
    intent_hits = sum(1 for k in cleaned if any(word in k for word in rule.intent_words))
    fit_hits = sum(1 for k in cleaned if any(word in k for word in rule.vocabulary))
    stop_hits = [k for k in cleaned if k in rule.stop_words]

    locality = _step(locality_hits, (0, 10, 15))
    intent = _step(intent_hits, (0, 10, 15))
    fit = _step(fit_hits, (0, 10, 15, 20))
    stop_penalty = -min(10, 5 * len(stop_hits))

    issues = []
    if len(unique) < rule.target_count:
        issues.append(f"Only {len(unique)}/{rule.target_count} keywords declared")
    if duplicates:
        issues.append(f"{duplicates} duplicate keyword(s)")
    if not locality_hits:
        issues.append("No keyword references the neighborhood or nearest station")
    if not fit_hits:
        issues.append("Keywords do not name the services offered")
    if stop_hits:
        issues.append(f"Overly generic keywords: {', '.join(stop_hits[:3])}")

    breakdown = {
        "count": count,
        "dedupe": dedupe,
        "locality": locality,
        "intent": intent,
        "industry_fit": fit,
        "stopword_penalty": stop_penalty,
    }
    return _result(sum(breakdown.values()), issues, breakdown)


def score_reviews(
    review_count: Optional[int],
    recent_30d: Optional[int],
    target: int,
    recent_weight: float,
) -> CategoryScore:
    if review_count is None:
        return _result(NEUTRAL_SCORE, ["Review count could not be measured"], {"neutral": 1})
    if review_count == 0:
        return _result(0, ["No visitor reviews yet"], {"volume": 0, "recency": 0})

    volume = log_count_score(review_count, target)
    if recent_30d is None:
        recency = NEUTRAL_RECENCY
        issues = ["Review recency unmeasured (neutral)"]
    else:
        recency = recency_step(recent_30d, review_count)
        issues = [] if recency >= 80 else ["Few reviews in the last 30 days"]
    if review_count < target:
        issues.append(f"{review_count}/{target} visitor reviews")

    score = (1 - recent_weight) * volume + recent_weight * recency
    return _result(score, issues, {"volume": volume, "recency": recency})


def score_photos(photo_count: Optional[int], target: int) -> CategoryScore:
    if photo_count is None:
        return _result(NEUTRAL_SCORE, ["Photo count could not be measured"], {"neutral": 1})
    if photo_count == 0:
        return _result(0, ["No business photos"], {"volume": 0})
    volume = log_count_score(photo_count, target)
    issues = [] if photo_count >= target else [f"{photo_count}/{target} business photos"]
    return _result(volume, issues, {"volume": volume})


def _price_tier(count: int) -> int:
    if count >= 30:
        return 100
    if count >= 20:
        return 90
    if count >= 10:
        return 75
    if count >= 5:
        return 60
    return 40


def score_price(menu_count: Optional[int], menus: Sequence[MenuItem], rule: PriceRule) -> CategoryScore:
    count = menu_count if menu_count is not None else (len(menus) if menus else None)
    if count is None:
        return _result(
            NEUTRAL_SCORE,
            ["No menu/price data collected (neutral)"],
            {"neutral": 1},
        )
    if count == 0:
        return _result(0, ["No menu or price items listed"], {"base": 0})

    base = _price_tier(count)
    breakdown: dict[str, float] = {"base": base}
    issues = [] if count >= 10 else [f"Only {count} menu items listed"]

    if menus:
        texts = [(item.price_text or "").strip() for item in menus]
        numeric = sum(1 for t in texts if _NUMERIC_PRICE.search(t) and _CURRENCY.search(t))
        inquiry = sum(1 for t in texts if not t or _INQUIRY_PRICE.search(t))
        numeric_ratio = numeric / len(texts)
        inquiry_ratio = inquiry / len(texts)
        breakdown["numeric_ratio"] = numeric_ratio
        breakdown["inquiry_ratio"] = inquiry_ratio

        if numeric_ratio < rule.numeric_floor:
            base -= rule.numeric_penalty
            breakdown["numeric_penalty"] = -rule.numeric_penalty
            issues.append("Too few items show a fixed price")
        if inquiry_ratio > rule.inquiry_tolerance:
            over = inquiry_ratio - rule.inquiry_tolerance
            penalty = min(rule.inquiry_penalty_cap, over * rule.inquiry_multiplier)
            base -= penalty
            breakdown["inquiry_penalty"] = -penalty
            issues.append("Too many items priced as 'inquire' or 'varies'")

    return _result(base, issues, breakdown)
