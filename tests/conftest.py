import os
import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pnl_ledger.config import get_settings  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used in the suite."""

    config.addinivalue_line("markers", "golden: fixed scenarios with hand-checked expected values")


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    """Keep cached settings and PNL_* environment from leaking between tests."""

    for key in list(os.environ):
        if key.startswith("PNL_"):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
