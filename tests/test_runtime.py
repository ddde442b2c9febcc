"""
Unit tests for RuntimeEnvironment handle ownership.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from tpcbench.core.errors import DatabaseOpenError
from tpcbench.core.runtime import RuntimeEnvironment


def _handle() -> MagicMock:
    handle = MagicMock()
    handle.closed = False

    async def _close() -> None:
        handle.closed = True

    handle.close = AsyncMock(side_effect=_close)
    return handle


class TestRuntimeEnvironment:
    @pytest.mark.asyncio
    async def test_open_is_lazy_and_shared(self, run_config) -> None:
        handle = _handle()
        opener = AsyncMock(return_value=handle)
        env = RuntimeEnvironment(run_config(), opener=opener)

        assert not env.db_open

        first, second = await asyncio.gather(env.open_db(), env.open_db())

        assert first is second is handle
        assert env.db_open
        opener.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reopen_closes_previous_handle(self, run_config) -> None:
        old, new = _handle(), _handle()
        env = RuntimeEnvironment(run_config(), opener=AsyncMock(side_effect=[old, new]))

        await env.open_db()
        assert await env.reopen_db() is new

        assert old.closed
        assert env.db_open
        assert await env.open_db() is new

    @pytest.mark.asyncio
    async def test_failed_open_leaves_no_handle(self, run_config) -> None:
        opener = AsyncMock(side_effect=DatabaseOpenError("nope", database="bench"))
        env = RuntimeEnvironment(run_config(), opener=opener)

        with pytest.raises(DatabaseOpenError):
            await env.open_db()

        assert not env.db_open

    @pytest.mark.asyncio
    async def test_context_manager_cancels_and_closes(self, run_config) -> None:
        handle = _handle()
        env = RuntimeEnvironment(run_config(), opener=AsyncMock(return_value=handle))

        async with env:
            await env.open_db()

        assert env.context.cancelled
        assert handle.closed
        await env.close_db()
        handle.close.assert_awaited_once()
