"""Test harness configuration.

This repo uses a `src/` layout. In some developer environments an older
installed `hal_pm_agent` package can shadow the local sources.

Ensure tests always import the in-repo code.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS = 30


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    src_path = str(src_dir)
    if sys.path[:1] != [src_path] and src_path not in sys.path:
        sys.path.insert(0, src_path)


def pytest_collection_modifyitems(
    session: pytest.Session, config: pytest.Config, items: list[pytest.Item]
) -> None:
    """
    Apply a default per-test timeout to non-integration tests.

    This relies on `pytest-timeout` when installed; if it isn't installed, the
    marker is inert but still documents the intent.
    """
    _ = session, config
    for item in items:
        if item.get_closest_marker("integration") is not None:
            continue
        item.add_marker(pytest.mark.timeout(DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS))


@pytest.fixture
def anyio_backend() -> str:
    # The transport schedules timers on the running asyncio loop.
    return "asyncio"


@pytest.fixture
def fake_hal():
    from tests.fakes import FakeHal

    return FakeHal()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop HAL_* variables so config tests only see what they set."""
    for key in (
        "HAL_API_BASE_URL",
        "HAL_PROJECT_ID",
        "HAL_PM_CREATED_BY",
        "HAL_PM_LOG_LEVEL",
        "HAL_PM_TURN_TIMEOUT_SECONDS",
    ):
        monkeypatch.delenv(key, raising=False)
