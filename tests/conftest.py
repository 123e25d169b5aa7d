"""Root conftest for test suite.

Auto-skips e2e tests that require a live coordination store.
Run explicitly with: STORE_URL=... pytest tests/e2e -m e2e
"""

import pytest


def pytest_collection_modifyitems(config, items):
    """Skip e2e tests unless explicitly requested.

    These tests talk to a real Realtime Database and should not run in CI
    unless explicitly invoked.
    """
    markexpr = config.getoption("-m", default="")
    explicit_e2e = "e2e" in markexpr
    running_e2e_path = any("tests/e2e" in str(arg) for arg in config.args)

    skip_e2e = pytest.mark.skip(
        reason="e2e tests require a live store. Run with: pytest tests/e2e -m e2e"
    )

    for item in items:
        if "e2e" in item.keywords and not explicit_e2e and not running_e2e_path:
            item.add_marker(skip_e2e)
