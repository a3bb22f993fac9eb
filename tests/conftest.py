"""Pytest configuration for wst.

1. Ensure the project root is importable when running from a checkout.
2. Reset the process-wide error handler between tests.
3. Provide a settings factory with console rendering disabled.
"""
from __future__ import annotations

import os
import sys

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from wst.config.settings import StatsSettings  # noqa: E402
from wst.error_handling import get_error_handler  # noqa: E402


@pytest.fixture(autouse=True)
def _clean_error_handler():
    get_error_handler().clear_errors()
    yield
    get_error_handler().clear_errors()


@pytest.fixture(autouse=True)
def _no_wst_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("WST_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def make_settings():
    def _make(**overrides):
        overrides.setdefault("show_stats", False)
        overrides.setdefault("stats_interval", 60.0)
        return StatsSettings(**overrides)
    return _make
