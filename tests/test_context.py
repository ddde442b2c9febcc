"""
Unit tests for ProcessContext cancellation and deadlines.
"""

from __future__ import annotations

import asyncio

import pytest

from tpcbench.core.context import CANCELLED, DEADLINE_EXCEEDED, ProcessContext


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_only_once(self) -> None:
        ctx = ProcessContext()
        assert ctx.cancelled is False
        assert ctx.reason is None

        assert ctx.cancel() is True
        assert ctx.cancel("again") is False
        assert ctx.cancelled is True
        assert ctx.reason == CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_wakes_all_waiters(self) -> None:
        ctx = ProcessContext()
        waiters = [asyncio.create_task(ctx.wait()) for _ in range(5)]
        await asyncio.sleep(0)

        ctx.cancel()
        await asyncio.wait_for(asyncio.gather(*waiters), timeout=1.0)

    @pytest.mark.asyncio
    async def test_parent_cancels_children(self) -> None:
        parent = ProcessContext(name="parent")
        child = parent.child(name="child")
        grandchild = child.child()

        parent.cancel("stop")

        assert child.cancelled and grandchild.cancelled
        assert grandchild.reason == "stop"

    @pytest.mark.asyncio
    async def test_child_does_not_cancel_parent(self) -> None:
        parent = ProcessContext()
        child = parent.child()

        child.cancel()

        assert child.cancelled
        assert not parent.cancelled

    @pytest.mark.asyncio
    async def test_child_of_cancelled_parent_starts_cancelled(self) -> None:
        parent = ProcessContext()
        parent.cancel("gone")
        assert parent.child().reason == "gone"


class TestDeadline:
    @pytest.mark.asyncio
    async def test_no_deadline(self) -> None:
        ctx = ProcessContext()
        assert ctx.deadline is None
        assert ctx.remaining() is None

    @pytest.mark.asyncio
    async def test_timeout_cancels(self) -> None:
        ctx = ProcessContext().with_timeout(0.05)
        assert ctx.remaining() is not None

        await asyncio.wait_for(ctx.wait(), timeout=1.0)

        assert ctx.reason == DEADLINE_EXCEEDED
        assert ctx.remaining() == 0.0

    @pytest.mark.asyncio
    async def test_timeout_does_not_cancel_parent(self) -> None:
        parent = ProcessContext()
        child = parent.with_timeout(0.01)

        await asyncio.wait_for(child.wait(), timeout=1.0)

        assert not parent.cancelled

    @pytest.mark.asyncio
    async def test_cancel_before_deadline_keeps_reason(self) -> None:
        ctx = ProcessContext(timeout=10.0)
        ctx.cancel()
        assert ctx.reason == CANCELLED


class TestSleep:
    @pytest.mark.asyncio
    async def test_sleep_times_out(self) -> None:
        ctx = ProcessContext()
        assert await ctx.sleep(0.01) is False

    @pytest.mark.asyncio
    async def test_sleep_interrupted_by_cancel(self) -> None:
        ctx = ProcessContext()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, ctx.cancel)

        assert await asyncio.wait_for(ctx.sleep(30), timeout=1.0) is True

    @pytest.mark.asyncio
    async def test_sleep_zero_reports_state(self) -> None:
        ctx = ProcessContext()
        assert await ctx.sleep(0) is False
        ctx.cancel()
        assert await ctx.sleep(0) is True
