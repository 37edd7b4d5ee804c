"""Shared fixtures for the MangaQuest test suite."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from prometheus_client import REGISTRY

from mangaquest.core.config import reload_settings


@pytest.fixture(autouse=True)
def reset_prometheus_registry():
    """Reset Prometheus registry before each test to avoid duplicate metric errors.

    prometheus-fastapi-instrumentator registers its metrics in the global
    registry, so creating the app more than once would otherwise fail.
    """
    collectors = list(REGISTRY._collector_to_names.keys())
    for collector in collectors:
        REGISTRY.unregister(collector)


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point MANGAQUEST_DATA_DIR at a per-test directory and reload settings."""
    data_dir = tmp_path / "data"
    monkeypatch.setenv("MANGAQUEST_DATA_DIR", str(data_dir))
    reload_settings()
    yield data_dir
    monkeypatch.delenv("MANGAQUEST_DATA_DIR", raising=False)
    reload_settings()
