"""
PlaceLens - place listing diagnosis and competitive content generation.

This package contains the core modules for the PlaceLens system:
- browser: Process-wide Playwright browser with isolated, scoped contexts
- extractors: Fallback-cascade field extractors for place pages
- collectors: Place crawler, map search client, and competitor discovery
- scoring: Deterministic, config-driven listing scoring engine
- services: Diagnosis service and the guaranteed-quality content loop
- config: Pydantic settings and immutable industry configuration
- models: Data models for records, scores, competitors, and drafts
"""

__version__ = "0.1.0"
