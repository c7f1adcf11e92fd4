"""Configuration for integration tests."""

import pytest


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --integration is given.

    Tests marked ``ci_safe`` always run: they stub the provider over
    ``httpx.MockTransport`` and touch only a temporary directory.
    """
    if config.getoption("--integration", default=False):
        return
    skip_integration = pytest.mark.skip(reason="Need --integration option to run")
    for item in items:
        if "integration" in item.keywords and "ci_safe" not in item.keywords:
            item.add_marker(skip_integration)
