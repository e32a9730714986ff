"""Deterministic, config-driven listing scorer."""

from placelens.scoring.components import grade_for
from placelens.scoring.engine import score_categories, score_place, weighted_total

__all__ = ["grade_for", "score_categories", "score_place", "weighted_total"]
