"""
Raw statement runner.

Executes operator-supplied SQL (files or inline statements) round-robin on
every worker. Each entry may hold several ``;``-separated statements and is
sent as one script.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence

from tpcbench.connectors.postgres_pool import PostgresConnectionPool
from tpcbench.core.runtime import RuntimeEnvironment
from tpcbench.models.run_config import RunConfiguration
from tpcbench.models.summary import WorkloadSummary
from tpcbench.workloads.base import Operation, Workload, run_workloads

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawQuery:
    name: str
    sql: str


def _read_query_file(path: Path) -> RawQuery:
    return RawQuery(name=path.stem, sql=path.read_text(encoding="utf-8"))


async def load_queries(
    files: Sequence[str], inline: Sequence[str]
) -> List[RawQuery]:
    """
    Load query files (in the default executor) and inline statements.

    Names: file stem for files, ``sql1``, ``sql2``, ... for inline SQL.

    Raises:
        ValueError: nothing to run, or a file is empty
        OSError: a file cannot be read
    """
    loop = asyncio.get_running_loop()
    queries: List[RawQuery] = []
    for path in files:
        query = await loop.run_in_executor(None, _read_query_file, Path(path))
        if not query.sql.strip():
            raise ValueError(f"query file {path} is empty")
        queries.append(query)
    for i, sql in enumerate(inline, start=1):
        if sql.strip():
            queries.append(RawQuery(name=f"sql{i}", sql=sql))
    if not queries:
        raise ValueError("no SQL to run: pass --query-files or --sql")

    # disambiguate duplicate names
    seen: Dict[str, int] = {}
    unique: List[RawQuery] = []
    for q in queries:
        n = seen.get(q.name, 0)
        seen[q.name] = n + 1
        unique.append(q if n == 0 else RawQuery(name=f"{q.name}_{n + 1}", sql=q.sql))
    return unique


class RawSQLWorkload(Workload):
    """Round-robin over the loaded statements."""

    name = "rawsql"

    def __init__(self, config: RunConfiguration, queries: Sequence[RawQuery]):
        super().__init__(config)
        if not queries:
            raise ValueError("RawSQLWorkload needs at least one query")
        self.queries = list(queries)
        self._next_index: Dict[int, int] = {}

    def next_operation(self, worker_id: int, rng: random.Random) -> Operation:
        index = self._next_index.get(worker_id, 0)
        self._next_index[worker_id] = (index + 1) % len(self.queries)
        query = self.queries[index]

        async def execute(db: PostgresConnectionPool) -> None:
            await db.execute_script(query.sql)

        return Operation(name=query.name, execute=execute)


def _split_csv(value: str) -> List[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


async def _run(env: RuntimeEnvironment, args: argparse.Namespace) -> WorkloadSummary:
    try:
        queries = await load_queries(_split_csv(args.query_files), args.sql or [])
    except (OSError, ValueError) as e:
        logger.error("rawsql: %s", e)
        return WorkloadSummary(workload=RawSQLWorkload.name, error=str(e))
    workload = RawSQLWorkload(env.config, queries)
    return await run_workloads(env, workload.name, [(workload, env.config.threads)])


def register(subparsers, common: argparse.ArgumentParser) -> None:
    """Register ``rawsql run``."""
    parser = subparsers.add_parser("rawsql", help="Run operator-supplied SQL")
    actions = parser.add_subparsers(dest="action", metavar="ACTION", required=True)
    sub = actions.add_parser("run", parents=[common], help="Run the SQL")
    sub.add_argument(
        "--query-files",
        default="",
        help="Comma-separated SQL files; each file is one operation",
    )
    sub.add_argument(
        "--sql",
        action="append",
        default=None,
        help="Inline SQL to run (repeatable)",
    )
    sub.set_defaults(handler=_run)
