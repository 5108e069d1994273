from __future__ import annotations

import os

import pytest


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Automatically mark tests under tests/integration as `integration`.

    Keeps `pytest -m 'not integration'` reliable even if a file misses a decorator.
    """

    for item in items:
        if "tests/integration" in str(getattr(item, "fspath", "")):
            item.add_marker(pytest.mark.integration)


@pytest.fixture
def control_api_url() -> str:
    """Control API used by the live tests; override with FLEETWATCH_API_URL."""
    return os.getenv("FLEETWATCH_API_URL", "http://127.0.0.1:8080/api")
