"""
Services.

- DiagnosisService: free and paid diagnosis entry points
- GuaranteedContentLoop: generate -> simulate score -> retry
- GuidanceRenderer: templated guidance and the safe default draft
"""

from placelens.services.content_loop import GuaranteedContentLoop, simulate
from placelens.services.diagnosis import DiagnosisService, default_search_phrase
from placelens.services.drafts import extract_json_object, parse_draft
from placelens.services.generation_client import (
    AnthropicTextGenerator,
    TextGenerator,
    get_text_generator,
    reset_text_generator,
)
from placelens.services.guidance import GuidanceRenderer
from placelens.services.keyword_volume import KeywordVolumeLookup, rank_by_volume

__all__ = [
    "AnthropicTextGenerator",
    "DiagnosisService",
    "GuaranteedContentLoop",
    "GuidanceRenderer",
    "KeywordVolumeLookup",
    "TextGenerator",
    "default_search_phrase",
    "extract_json_object",
    "get_text_generator",
    "parse_draft",
    "rank_by_volume",
    "reset_text_generator",
    "simulate",
]
