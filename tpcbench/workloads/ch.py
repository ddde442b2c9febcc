"""
CH-benCHmark style mixed workload.

Runs the TPC-C transaction mix on ``--threads`` workers and the TPC-H query
set on ``--acThreads`` workers at the same time, against the same pool and
under the same stop condition.
"""

from __future__ import annotations

import argparse
import logging

from tpcbench.core.runtime import RuntimeEnvironment
from tpcbench.models.summary import WorkloadSummary
from tpcbench.workloads import tpcc, tpch
from tpcbench.workloads.base import run_maintenance, run_workloads

logger = logging.getLogger(__name__)

NAME = "ch"


async def _prepare(env: RuntimeEnvironment, args: argparse.Namespace) -> WorkloadSummary:
    summaries = []
    for module in (tpcc, tpch):
        summary = await run_maintenance(env, module.build_workload(env.config, args), "prepare")
        summaries.append(summary)
        if not summary.ok or env.context.cancelled:
            break
    errors = [s.error for s in summaries if s.error]
    return WorkloadSummary(
        workload=NAME,
        action="prepare",
        elapsed_seconds=sum(s.elapsed_seconds for s in summaries),
        cancelled=env.context.cancelled,
        error=errors[0] if errors else None,
    )


async def _run(env: RuntimeEnvironment, args: argparse.Namespace) -> WorkloadSummary:
    config = env.config
    transactional = tpcc.build_workload(config, args)
    analytical = tpch.build_workload(config, args)
    return await run_workloads(
        env,
        NAME,
        [(transactional, config.threads), (analytical, config.ac_threads)],
    )


def register(subparsers, common: argparse.ArgumentParser) -> None:
    """Register ``ch {prepare,run}``."""
    parser = subparsers.add_parser(
        NAME, help="Mixed transactional + analytical workload"
    )
    actions = parser.add_subparsers(dest="action", metavar="ACTION", required=True)
    for action, handler, help_text in (
        ("prepare", _prepare, "Create and load TPC-C and TPC-H tables"),
        ("run", _run, "Run transactions and queries concurrently"),
    ):
        sub = actions.add_parser(action, parents=[common], help=help_text)
        tpcc.add_tpcc_flags(sub)
        tpch.add_tpch_flags(sub)
        sub.set_defaults(handler=handler)
