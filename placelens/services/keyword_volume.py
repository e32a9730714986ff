"""Keyword search-volume lookup interface.

The lookup service itself is an external collaborator. When one is supplied,
the content loop uses it only to order keyword padding candidates.
"""

from typing import Optional, Protocol, Sequence

import structlog

logger = structlog.get_logger(__name__)

MAX_LOOKUP_KEYWORDS = 20


class KeywordVolumeLookup(Protocol):
    async def monthly_volumes(self, keywords: Sequence[str]) -> dict[str, int]:
        """Monthly search volume per keyword; keywords without data may be omitted."""
        ...


async def rank_by_volume(
    lookup: Optional[KeywordVolumeLookup],
    candidates: Sequence[str],
) -> list[str]:
    """
    Order candidates by search volume, highest first.

    Candidates beyond the lookup limit and candidates without data keep their
    original relative order after the ranked ones. Lookup failures leave the
    order unchanged.
    """
    ordered = list(dict.fromkeys(candidates))
    if lookup is None or not ordered:
        return ordered

    try:
        volumes = await lookup.monthly_volumes(ordered[:MAX_LOOKUP_KEYWORDS])
    except Exception as e:
        logger.warning("keyword_volume_lookup_failed", error=str(e)[:200], error_type=type(e).__name__)
        return ordered

    position = {keyword: n for n, keyword in enumerate(ordered)}
    return sorted(ordered, key=lambda k: (-(volumes.get(k) or 0), position[k]))
