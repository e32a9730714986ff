"""
Field extractors.

Each field is an ordered cascade of Strategy objects run against an
ExtractionContext; the frame resolver produces the content handle they share.
"""

from placelens.extractors.basic_info import extract_address, extract_name
from placelens.extractors.cascade import ExtractionResult, Strategy, run_cascade
from placelens.extractors.context import ExtractionContext
from placelens.extractors.counts import apply_photo_guard, extract_photo_count, extract_review_count
from placelens.extractors.description import extract_description
from placelens.extractors.directions import extract_directions
from placelens.extractors.identifiers import extract_place_id, extract_place_ids_in_order
from placelens.extractors.keywords import KeywordSet, extract_keywords, finalize_keywords
from placelens.extractors.menu import MenuScan, extract_menu
from placelens.extractors.navigator import FrameResolver, Resolution
from placelens.extractors.recency import extract_recent_review_count, recent_review_count
from placelens.extractors.ui_expander import expand_all

__all__ = [
    "ExtractionContext",
    "ExtractionResult",
    "FrameResolver",
    "KeywordSet",
    "MenuScan",
    "Resolution",
    "Strategy",
    "apply_photo_guard",
    "expand_all",
    "extract_address",
    "extract_description",
    "extract_directions",
    "extract_keywords",
    "extract_menu",
    "extract_name",
    "extract_photo_count",
    "extract_place_id",
    "extract_place_ids_in_order",
    "extract_recent_review_count",
    "extract_review_count",
    "finalize_keywords",
    "recent_review_count",
    "run_cascade",
]
