"""
PlaceLens Test Suite.

- unit/: Pure helpers, extractors against mocked browser handles, scoring,
  discovery with mocked enrichment, the search client over httpx.MockTransport,
  and the content loop with a fake generator
- integration/: Diagnosis service wired end to end with mocked collaborators
- conftest.py: Shared fixtures and test configuration

Run tests with: pytest
"""
