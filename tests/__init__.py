"""
docrecords test suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Engine, pagination and history against InMemoryStore
- e2e/: Tests against a real MongoDB server
"""
