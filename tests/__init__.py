"""Test suite for metrum.

Test Structure:
- unit/tempo/: Tempo map values, sections, recompute, map operations, state
- unit/config/: Config models and loaders
- unit/utils/: Logging and JSON helpers
- unit/cli/: Command-line interface
- conftest.py: Shared fixtures
"""
