"""
Data Models.

- BusinessRecord: extracted facts of one listing, with per-field provenance
- ScoringOutput / CategoryScore: scoring engine output
- CompetitorRecord: ranked competing listing
- ImprovementDraft / GenerationOutcome: paid-tier generated content
- DiagnosisResult / PaidDiagnosisResult: what the service layer returns
"""

from placelens.models.schemas import (
    BusinessRecord,
    CategoryScore,
    CompetitorRecord,
    CompetitorSource,
    DiagnosisResult,
    GenerationOutcome,
    Grade,
    ImprovementDraft,
    MenuItem,
    PaidDiagnosisResult,
    ScoringOutput,
)

__all__ = [
    "BusinessRecord",
    "CategoryScore",
    "CompetitorRecord",
    "CompetitorSource",
    "DiagnosisResult",
    "GenerationOutcome",
    "Grade",
    "ImprovementDraft",
    "MenuItem",
    "PaidDiagnosisResult",
    "ScoringOutput",
]
