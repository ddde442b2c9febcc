"""
Workload base classes and the shared run loop.

A workload produces :class:`Operation` objects; the runner fans out one task
per configured thread, times each operation, applies the error policy and
stops on the first of:

- the iteration budget (``--count``) is used up
- the time budget (``--time``) expires
- the process context is cancelled (termination signal)
- an operation fails and ``--ignore-error`` is not set
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence

from tpcbench.connectors.postgres_pool import PostgresConnectionPool
from tpcbench.core.context import ProcessContext
from tpcbench.core.durations import format_duration
from tpcbench.core.errors import WorkloadError
from tpcbench.core.runtime import RuntimeEnvironment
from tpcbench.models.run_config import RunConfiguration
from tpcbench.models.summary import WorkloadSummary
from tpcbench.workloads.measurement import Measurement

logger = logging.getLogger(__name__)


@dataclass
class Operation:
    """One unit of work: a named coroutine run against the shared pool."""

    name: str
    execute: Callable[[PostgresConnectionPool], Awaitable[Any]]


def positive_int(value: str) -> int:
    """argparse ``type=`` for scale flags that must be at least 1."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


class IterationBudget:
    """Shared iteration counter; a total of 0 means unbounded."""

    def __init__(self, total: int):
        self.total = total
        self.used = 0

    def acquire(self) -> bool:
        if self.total == 0:
            return True
        if self.used >= self.total:
            return False
        self.used += 1
        return True


class Workload(ABC):
    """
    Abstract base class for workloads.

    Subclasses implement :meth:`next_operation`; ``prepare`` and ``cleanup``
    are optional.
    """

    name: str = "workload"

    def __init__(self, config: RunConfiguration):
        self.config = config

    def preflight(self) -> None:
        """Validate settings before any worker starts. Raise to abort."""

    async def prepare(self, db: PostgresConnectionPool, ctx: ProcessContext) -> None:
        logger.info("%s: nothing to prepare", self.name)

    async def cleanup(self, db: PostgresConnectionPool, ctx: ProcessContext) -> None:
        logger.info("%s: nothing to clean up", self.name)

    @abstractmethod
    def next_operation(self, worker_id: int, rng: random.Random) -> Operation:
        """Pick the next operation for ``worker_id``."""


class WorkloadRunner:
    """Runs ``threads`` workers of one workload against the shared pool."""

    def __init__(
        self,
        workload: Workload,
        db: PostgresConnectionPool,
        context: ProcessContext,
        *,
        threads: int,
        measurement: Measurement,
        budget: IterationBudget,
        worker_id_offset: int = 0,
    ):
        self.workload = workload
        self.db = db
        self.context = context
        self.threads = threads
        self.measurement = measurement
        self.budget = budget
        self.worker_id_offset = worker_id_offset
        self.error: Optional[WorkloadError] = None

    @property
    def config(self) -> RunConfiguration:
        return self.workload.config

    async def run(self) -> None:
        await _gather_all(
            self._worker(self.worker_id_offset + i) for i in range(self.threads)
        )

    async def _worker(self, worker_id: int) -> None:
        """
        Worker task that executes operations until a stop condition fires.

        Args:
            worker_id: Unique identifier for this worker
        """
        logger.debug("%s worker %d started", self.workload.name, worker_id)
        rng = random.Random()

        while not self.context.cancelled:
            if not self.budget.acquire():
                break
            op_name = self.workload.name
            start = time.perf_counter()
            try:
                op = self.workload.next_operation(worker_id, rng)
                op_name = op.name
                await op.execute(self.db)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.measurement.record(op_name, _elapsed_ms(start), error=True)
                if not self.config.silence:
                    logger.warning(
                        "[%s] worker %d %s failed: %s",
                        self.workload.name,
                        worker_id,
                        op_name,
                        e,
                    )
                if self.config.ignore_error:
                    continue
                self._fail(op_name, e)
                break
            self.measurement.record(op_name, _elapsed_ms(start))

        logger.debug("%s worker %d stopped", self.workload.name, worker_id)

    def _fail(self, op_name: str, exc: Exception) -> None:
        if self.error is None:
            self.error = WorkloadError(f"{op_name} failed: {exc}", operation=op_name)
        # stop sibling workers sharing this run context
        self.context.cancel("workload error")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


async def _gather_all(coros: Iterable[Awaitable[Any]]) -> None:
    """Await every coroutine; if one raises, cancel and reap the rest."""
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        await asyncio.gather(*tasks)
    finally:
        pending = [t for t in tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


async def _report_progress(
    name: str, measurement: Measurement, ctx: ProcessContext, interval: float
) -> None:
    while not await ctx.sleep(interval):
        elapsed, ops = measurement.take_interval()
        for op_name in sorted(ops):
            logger.info("[%s] %s", name, ops[op_name].format_line(elapsed))


async def run_workloads(
    env: RuntimeEnvironment,
    name: str,
    groups: Sequence[tuple[Workload, int]],
) -> WorkloadSummary:
    """
    Run one or more workloads concurrently under a single stop condition.

    Args:
        env: Runtime environment (config, process context, handle)
        name: Name used in the summary and progress lines
        groups: ``(workload, threads)`` pairs; each pair gets its own
            iteration budget

    Raises:
        DatabaseOpenError: the shared handle cannot be opened
    """
    config = env.config
    try:
        for workload, _ in groups:
            workload.preflight()
    except Exception as e:
        logger.error("%s: %s", name, e)
        return WorkloadSummary(workload=name, action="run", error=str(e))

    db = await env.open_db()
    run_ctx = env.context.with_timeout(config.total_time, name=f"{name}/run")
    measurement = Measurement()

    runners: list[WorkloadRunner] = []
    offset = 0
    for workload, threads in groups:
        runners.append(
            WorkloadRunner(
                workload,
                db,
                run_ctx,
                threads=threads,
                measurement=measurement,
                budget=IterationBudget(config.total_count),
                worker_id_offset=offset,
            )
        )
        offset += threads

    logger.info(
        "Running %s with %s (time: %s, count: %s)",
        name,
        ", ".join(f"{w.name}x{t}" for w, t in groups),
        format_duration(config.total_time) if config.total_time else "unbounded",
        config.total_count or "unbounded",
    )
    reporter = asyncio.create_task(
        _report_progress(name, measurement, run_ctx, config.output_interval)
    )
    try:
        await _gather_all(r.run() for r in runners)
    finally:
        run_ctx.cancel("run finished")
        await reporter

    errors = [r.error for r in runners if r.error is not None]
    return WorkloadSummary(
        workload=name,
        action="run",
        elapsed_seconds=measurement.elapsed(),
        operations=measurement.summary(),
        cancelled=env.context.cancelled,
        error=str(errors[0]) if errors else None,
    )


async def run_maintenance(
    env: RuntimeEnvironment,
    workload: Workload,
    action: str,
) -> WorkloadSummary:
    """
    Run ``prepare`` or ``cleanup`` for ``workload``.

    Failures are reported in the summary; a failure to open the database
    propagates as DatabaseOpenError.
    """
    db = await env.open_db()
    start = time.monotonic()
    step = workload.prepare if action == "prepare" else workload.cleanup
    error: Optional[str] = None
    try:
        await step(db, env.context)
    except Exception as e:
        logger.error("%s %s failed: %s", workload.name, action, e)
        error = str(e)
    return WorkloadSummary(
        workload=workload.name,
        action=action,
        elapsed_seconds=time.monotonic() - start,
        cancelled=env.context.cancelled,
        error=error,
    )
