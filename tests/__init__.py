"""CharityFlow Test Suite.

Test organization mirrors charityflow/ structure:
    tests/
    ├── conftest.py          # Shared fixtures
    ├── test_core/           # Config, errors, logging
    ├── test_db/             # Models and in-memory stores
    ├── test_integrations/   # Retry, local sinks, n8n hook
    ├── test_engine/         # Workflow logic tests
    └── test_autonomous/     # Automation dispatcher tests

Markers:
    - @pytest.mark.slow: Tests taking > 1 second
    - @pytest.mark.integration: Tests requiring external services
"""
