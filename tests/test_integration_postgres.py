"""
Integration tests against a real PostgreSQL server.

Skipped unless TPCBENCH_IT_HOST is set. Connection settings:
- TPCBENCH_IT_HOST / TPCBENCH_IT_PORT
- TPCBENCH_IT_USER / TPCBENCH_IT_PASSWORD

The user needs CREATEDB; each test uses a fresh database name.
"""

from __future__ import annotations

import os
import uuid

import asyncpg
import pytest
import pytest_asyncio

from tpcbench.connectors.postgres_pool import build_dsn, open_pool, quote_ident
from tpcbench.core.context import ProcessContext
from tpcbench.core.errors import DatabaseOpenError
from tpcbench.core.runtime import RuntimeEnvironment
from tpcbench.models.run_config import RunConfiguration
from tpcbench.workloads import tpcc, tpch
from tpcbench.workloads.base import run_maintenance, run_workloads

pytestmark = pytest.mark.integration


def _config(**overrides) -> RunConfiguration:
    values = dict(
        db_name=f"tpcbench_it_{uuid.uuid4().hex[:8]}",
        host=os.getenv("TPCBENCH_IT_HOST", "127.0.0.1"),
        port=int(os.getenv("TPCBENCH_IT_PORT", "5432")),
        user=os.getenv("TPCBENCH_IT_USER", "postgres"),
        password=os.getenv("TPCBENCH_IT_PASSWORD", ""),
        output_interval=60.0,
    )
    values.update(overrides)
    return RunConfiguration(**values)


async def _drop_database(config: RunConfiguration) -> None:
    conn = await asyncpg.connect(dsn=build_dsn(config, database="postgres", include_params=False))
    try:
        await conn.execute(f"DROP DATABASE IF EXISTS {quote_ident(config.db_name)}")
    finally:
        await conn.close()


@pytest_asyncio.fixture
async def fresh_config():
    config = _config()
    yield config
    await _drop_database(config)


@pytest.mark.asyncio
async def test_missing_database_is_created(fresh_config) -> None:
    pool = await open_pool(fresh_config)
    try:
        assert await pool.fetch_val("SELECT current_database()") == fresh_config.db_name
        assert pool.max_size == fresh_config.idle_pool_capacity
    finally:
        await pool.close()

    # second open finds the database
    pool = await open_pool(fresh_config)
    assert await pool.is_healthy()
    await pool.close()


@pytest.mark.asyncio
async def test_wrong_password_is_fatal() -> None:
    config = _config(password="definitely-not-the-password", user="tpcbench_no_such_user")
    with pytest.raises(DatabaseOpenError):
        await open_pool(config)


@pytest.mark.asyncio
async def test_conn_params_become_session_settings(fresh_config) -> None:
    config = fresh_config.model_copy(update={"conn_params": "application_name=tpcbench_it"})
    pool = await open_pool(config)
    try:
        assert await pool.fetch_val("SHOW application_name") == "tpcbench_it"
    finally:
        await pool.close()


@pytest.mark.asyncio
async def test_tpcc_and_tpch_cycle(fresh_config) -> None:
    config = fresh_config.model_copy(update={"total_count": 20, "threads": 2})
    env = RuntimeEnvironment(config, context=ProcessContext())
    async with env:
        transactional = tpcc.TPCCWorkload(config, warehouses=1, items=200, customers=10)
        analytical = tpch.TPCHWorkload(config, rows=2000)

        for workload in (transactional, analytical):
            summary = await run_maintenance(env, workload, "prepare")
            assert summary.ok, summary.error

        summary = await run_workloads(env, "ch", [(transactional, 2), (analytical, 1)])
        assert summary.ok, summary.error
        assert summary.total_operations == 40

        for workload in (transactional, analytical):
            assert (await run_maintenance(env, workload, "cleanup")).ok
