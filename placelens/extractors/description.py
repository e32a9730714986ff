"""Business description ("소개") extraction."""

from placelens.extractors.cascade import ExtractionResult, run_cascade
from placelens.extractors.context import ExtractionContext
from placelens.extractors.free_text import body_lines, clip, squeeze_blank_lines, structured_longest

DESCRIPTION_KEYS = (
    "description",
    "placeDescription",
    "intro",
    "businessSummary",
    "bizIntro",
    "storeIntro",
)
MIN_STRUCTURED_LENGTH = 20

DESCRIPTION_STRATEGIES = (
    structured_longest(DESCRIPTION_KEYS, MIN_STRUCTURED_LENGTH),
    body_lines(lambda ctx: ctx.heuristics.description_body_signals, min_line=10, max_line=220),
)


def postprocess_description(text: str, max_chars: int = 1200) -> str:
    """Squeeze blank runs and keep the head of the text (the intro is front-loaded)."""
    return clip(squeeze_blank_lines(text), max_chars)


async def extract_description(ctx: ExtractionContext) -> ExtractionResult[str]:
    result = await run_cascade("description", DESCRIPTION_STRATEGIES, ctx)
    if result.value:
        result.value = postprocess_description(result.value, ctx.heuristics.description_max_chars)
    return result
