"""Shared strategies for long free-text fields (description, directions)."""

import re
from typing import Callable, Optional, Sequence

from placelens.extractors.cascade import Strategy
from placelens.extractors.context import ExtractionContext
from placelens.extractors.structured_data import longest_string_value

BODY_LINES_SCRIPT = """
() => {
  const body = document.body;
  if (!body) return [];
  return String(body.innerText || '')
    .split(/\\r?\\n|•|·/g)
    .map(s => s.replace(/\\s+/g, ' ').trim())
    .filter(Boolean);
}
"""


def squeeze_blank_lines(text: str) -> str:
    return re.sub(r"\n{3,}", "\n\n", (text or "").replace("\r", "")).strip()


def clip(text: str, max_chars: int) -> str:
    return text[:max_chars].strip() if len(text) > max_chars else text


def structured_longest(keys: Sequence[str], min_length: int) -> Strategy[str]:
    """Longest string under any key, searched across the content handle and the outer page."""

    async def run(ctx: ExtractionContext) -> Optional[str]:
        best = ""
        for label, _ in ctx.handles():
            found = longest_string_value(await ctx.html(label), keys, min_length)
            if len(found) > len(best):
                best = found
        return best or None

    return Strategy("structured_longest", run)


def body_lines(
    signals: Callable[[ExtractionContext], Sequence[str]],
    min_line: int,
    max_line: int,
    top_lines: int = 12,
) -> Strategy[str]:
    """Rendered body lines that mention any signal word, joined in page order."""

    async def run(ctx: ExtractionContext) -> Optional[str]:
        words = tuple(signals(ctx))
        for _, handle in ctx.handles():
            lines = await handle.evaluate(BODY_LINES_SCRIPT)
            picked = [
                line for line in lines
                if min_line <= len(line) <= max_line and any(word in line for word in words)
            ]
            if picked:
                return "\n".join(picked[:top_lines])
        return None

    return Strategy("body_lines", run)
