"""Directions ("오시는길") extraction."""

import re
from typing import Optional

from placelens.extractors.cascade import ExtractionResult, Strategy, run_cascade
from placelens.extractors.context import ExtractionContext
from placelens.extractors.free_text import body_lines, clip, squeeze_blank_lines, structured_longest

DIRECTIONS_KEYS = (
    "wayToCome",
    "directions",
    "visitGuide",
    "comeRoute",
    "route",
    "transport",
    "guide",
)
MIN_STRUCTURED_LENGTH = 10
DIRECTIONS_LABELS = ("오시는길", "오시는 길", "찾아오는길", "찾아오는 길", "오시는방법", "방문 안내")
_LABEL_RE = re.compile("|".join(re.escape(label) for label in DIRECTIONS_LABELS))

# Walks up from the first element labelled like a directions heading and
# returns the longest ancestor (or next sibling) text.
LABEL_WALK_SCRIPT = """
(labels) => {
  const norm = s => String(s || '').replace(/\\s+/g, ' ').trim();
  const nodes = Array.from(document.querySelectorAll('h1,h2,h3,strong,span,div,p,li'));
  const label = nodes.find(n => {
    const t = norm(n.textContent);
    return t.length <= 20 && labels.some(l => t.includes(l));
  });
  if (!label) return '';
  let best = '';
  let cur = label;
  for (let i = 0; i < 4; i++) {
    cur = cur.parentElement;
    if (!cur) break;
    const t = norm(cur.innerText || cur.textContent);
    if (t.length > best.length && t.length <= 1500) best = t;
  }
  const next = label.nextElementSibling;
  const nt = next ? norm(next.innerText || next.textContent) : '';
  if (nt.length > best.length) best = nt;
  return best;
}
"""


async def _label_walk(ctx: ExtractionContext) -> Optional[str]:
    for _, handle in ctx.handles():
        text = await handle.evaluate(LABEL_WALK_SCRIPT, list(DIRECTIONS_LABELS))
        text = _LABEL_RE.sub("", text or "").lstrip(":- ").strip()
        if len(text) >= MIN_STRUCTURED_LENGTH:
            return text
    return None


DIRECTIONS_STRATEGIES = (
    structured_longest(DIRECTIONS_KEYS, MIN_STRUCTURED_LENGTH),
    Strategy("label_walk", _label_walk),
    body_lines(lambda ctx: ctx.heuristics.directions_body_signals, min_line=8, max_line=200),
)


def postprocess_directions(text: str, max_chars: int = 800, top_lines: int = 12) -> str:
    """Keep the first 12 non-empty lines, then clip."""
    lines = [line.strip() for line in squeeze_blank_lines(text).split("\n") if line.strip()]
    return clip("\n".join(lines[:top_lines]), max_chars)


async def extract_directions(ctx: ExtractionContext) -> ExtractionResult[str]:
    result = await run_cascade("directions", DIRECTIONS_STRATEGIES, ctx)
    if result.value:
        result.value = postprocess_directions(result.value, ctx.heuristics.directions_max_chars)
    return result
