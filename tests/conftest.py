"""
Global pytest configuration and fixtures for tpcbench tests.

This module provides:
- ``run_config`` factory for RunConfiguration instances
- ``fake_pool`` stand-in for PostgresConnectionPool (no server needed)
- ``integration`` marker handling (skipped unless TPCBENCH_IT_HOST is set)
"""

from __future__ import annotations

import os
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from tpcbench.models.run_config import RunConfiguration


def integration_enabled() -> bool:
    """Integration tests need a reachable PostgreSQL server."""
    return bool(os.getenv("TPCBENCH_IT_HOST"))


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if integration_enabled():
        return
    skip = pytest.mark.skip(reason="set TPCBENCH_IT_HOST to run integration tests")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def run_config() -> Callable[..., RunConfiguration]:
    """Factory for RunConfiguration with test-friendly defaults."""

    def _make(**overrides: Any) -> RunConfiguration:
        values: dict[str, Any] = {
            "db_name": "bench",
            "output_interval": 60.0,
        }
        values.update(overrides)
        return RunConfiguration(**values)

    return _make


@pytest.fixture
def fake_pool() -> MagicMock:
    """Open PostgresConnectionPool double; every query method is an AsyncMock."""
    pool = MagicMock()
    pool.closed = False
    pool.execute = AsyncMock(return_value="OK")
    pool.execute_script = AsyncMock(return_value="OK")
    pool.fetch_all = AsyncMock(return_value=[])
    pool.fetch_one = AsyncMock(return_value=None)
    pool.fetch_val = AsyncMock(return_value=0)

    async def _close() -> None:
        pool.closed = True

    pool.close = AsyncMock(side_effect=_close)
    return pool
