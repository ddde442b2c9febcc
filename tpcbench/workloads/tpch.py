"""
TPC-H style analytical workload.

Loads a generated ``lineitem``/``part``/``supplier`` data set and runs a fixed
set of aggregate queries. Q15 is issued as one multi-statement script (create
view, query, drop view), as the TPC-H definition writes it.
"""

from __future__ import annotations

import argparse
import logging
import random
from typing import Dict, List

from tpcbench.connectors.postgres_pool import PostgresConnectionPool
from tpcbench.core.context import ProcessContext
from tpcbench.core.runtime import RuntimeEnvironment
from tpcbench.models.run_config import RunConfiguration
from tpcbench.models.summary import WorkloadSummary
from tpcbench.workloads.base import (
    Operation,
    Workload,
    positive_int,
    run_maintenance,
    run_workloads,
)

logger = logging.getLogger(__name__)

TABLES = ("lineitem", "part", "supplier")

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS part (
    p_partkey INT PRIMARY KEY,
    p_type VARCHAR(25),
    p_brand VARCHAR(10)
);
CREATE TABLE IF NOT EXISTS supplier (
    s_suppkey INT PRIMARY KEY,
    s_name VARCHAR(25)
);
CREATE TABLE IF NOT EXISTS lineitem (
    l_orderkey INT,
    l_linenumber INT,
    l_partkey INT,
    l_suppkey INT,
    l_quantity NUMERIC(15, 2),
    l_extendedprice NUMERIC(15, 2),
    l_discount NUMERIC(15, 2),
    l_tax NUMERIC(15, 2),
    l_returnflag CHAR(1),
    l_linestatus CHAR(1),
    l_shipdate DATE,
    PRIMARY KEY (l_orderkey, l_linenumber)
);
"""

LOAD_STEPS = (
    (
        "part",
        "INSERT INTO part "
        "SELECT p, (ARRAY['PROMO BRUSHED', 'STANDARD POLISHED', 'ECONOMY ANODIZED'])"
        "[1 + (p % 3)], 'Brand#' || (1 + p % 5) "
        "FROM generate_series(1, greatest($1 / 30, 1)) AS p",
    ),
    (
        "supplier",
        "INSERT INTO supplier "
        "SELECT s, 'Supplier#' || s FROM generate_series(1, greatest($1 / 600, 1)) AS s",
    ),
    (
        "lineitem",
        "INSERT INTO lineitem "
        "SELECT n / 4 + 1, n % 4 + 1, "
        "1 + floor(random() * greatest($1 / 30, 1))::int, "
        "1 + floor(random() * greatest($1 / 600, 1))::int, "
        "q, round((q * (900 + random() * 1100))::numeric, 2), "
        "round((random() * 0.1)::numeric, 2), round((random() * 0.08)::numeric, 2), "
        "(ARRAY['A', 'N', 'R'])[1 + floor(random() * 3)::int], "
        "(ARRAY['F', 'O'])[1 + floor(random() * 2)::int], "
        "DATE '1992-01-02' + floor(random() * 2500)::int "
        "FROM (SELECT n, (1 + floor(random() * 50))::numeric AS q "
        "FROM generate_series(0, $1 - 1) AS n) AS g",
    ),
)

QUERIES: Dict[str, str] = {
    # pricing summary report
    "q1": """
SELECT l_returnflag, l_linestatus,
       sum(l_quantity) AS sum_qty,
       sum(l_extendedprice) AS sum_base_price,
       sum(l_extendedprice * (1 - l_discount)) AS sum_disc_price,
       sum(l_extendedprice * (1 - l_discount) * (1 + l_tax)) AS sum_charge,
       avg(l_quantity) AS avg_qty,
       avg(l_extendedprice) AS avg_price,
       avg(l_discount) AS avg_disc,
       count(*) AS count_order
FROM lineitem
WHERE l_shipdate <= DATE '1998-12-01' - INTERVAL '90 days'
GROUP BY l_returnflag, l_linestatus
ORDER BY l_returnflag, l_linestatus
""",
    # forecasting revenue change
    "q6": """
SELECT sum(l_extendedprice * l_discount) AS revenue
FROM lineitem
WHERE l_shipdate >= DATE '1994-01-01'
  AND l_shipdate < DATE '1994-01-01' + INTERVAL '1 year'
  AND l_discount BETWEEN 0.05 AND 0.07
  AND l_quantity < 24
""",
    # promotion effect
    "q14": """
SELECT 100.00 * sum(CASE WHEN p_type LIKE 'PROMO%'
                         THEN l_extendedprice * (1 - l_discount) ELSE 0 END)
       / nullif(sum(l_extendedprice * (1 - l_discount)), 0) AS promo_revenue
FROM lineitem JOIN part ON l_partkey = p_partkey
WHERE l_shipdate >= DATE '1995-09-01'
  AND l_shipdate < DATE '1995-09-01' + INTERVAL '1 month'
""",
    # top supplier
    "q15": """
CREATE OR REPLACE TEMPORARY VIEW revenue0 (supplier_no, total_revenue) AS
    SELECT l_suppkey, sum(l_extendedprice * (1 - l_discount))
    FROM lineitem
    WHERE l_shipdate >= DATE '1996-01-01'
      AND l_shipdate < DATE '1996-01-01' + INTERVAL '3 months'
    GROUP BY l_suppkey;
SELECT s_suppkey, s_name, total_revenue
FROM supplier JOIN revenue0 ON s_suppkey = supplier_no
WHERE total_revenue = (SELECT max(total_revenue) FROM revenue0)
ORDER BY s_suppkey;
DROP VIEW IF EXISTS revenue0;
""",
}

MULTI_STATEMENT_QUERIES = frozenset({"q15"})

DEFAULT_QUERIES = ",".join(QUERIES)


def parse_query_names(value: str) -> List[str]:
    """
    Parse a comma-separated query list such as ``"q1,q6"``.

    Raises:
        ValueError: unknown query name or empty list
    """
    names = [n.strip().lower() for n in (value or "").split(",") if n.strip()]
    if not names:
        raise ValueError("no queries selected")
    unknown = [n for n in names if n not in QUERIES]
    if unknown:
        raise ValueError(
            f"unknown queries: {', '.join(unknown)} (available: {DEFAULT_QUERIES})"
        )
    return names


def query_list_arg(value: str) -> List[str]:
    """argparse ``type=`` adapter for :func:`parse_query_names`."""
    try:
        return parse_query_names(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


class TPCHWorkload(Workload):
    """Runs the selected queries in order, round-robin per worker."""

    name = "tpch"

    def __init__(
        self,
        config: RunConfiguration,
        *,
        rows: int = 100000,
        queries: List[str] | None = None,
    ):
        super().__init__(config)
        self.rows = rows
        self.queries = list(queries) if queries else list(QUERIES)
        self._next_index: Dict[int, int] = {}

    async def prepare(self, db: PostgresConnectionPool, ctx: ProcessContext) -> None:
        if self.config.drop_data:
            await self.cleanup(db, ctx)

        await db.execute_script(CREATE_TABLES_SQL)
        loaded = await db.fetch_val("SELECT count(*) FROM lineitem")
        if loaded:
            logger.info("tpch: %d lineitem rows already loaded, skipping load", loaded)
            return

        for table, sql in LOAD_STEPS:
            if ctx.cancelled:
                logger.warning("tpch: load cancelled before %s", table)
                return
            logger.info("tpch: loading %s", table)
            await db.execute(sql, self.rows)
        await db.execute_script("ANALYZE " + ", ".join(TABLES))
        logger.info("tpch: loaded %d lineitem rows", self.rows)

    async def cleanup(self, db: PostgresConnectionPool, ctx: ProcessContext) -> None:
        logger.info("tpch: dropping tables")
        await db.execute_script(
            "".join(f"DROP TABLE IF EXISTS {table};" for table in TABLES)
        )

    def next_operation(self, worker_id: int, rng: random.Random) -> Operation:
        index = self._next_index.get(worker_id, 0)
        self._next_index[worker_id] = (index + 1) % len(self.queries)
        name = self.queries[index]
        sql = QUERIES[name]

        if name in MULTI_STATEMENT_QUERIES:

            async def execute(db: PostgresConnectionPool) -> None:
                # temporary view is per session, so keep it on one connection
                await db.execute_script(sql)

        else:

            async def execute(db: PostgresConnectionPool) -> None:
                await db.fetch_all(sql)

        return Operation(name=name.upper(), execute=execute)


def add_tpch_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--scale-rows",
        type=positive_int,
        default=100000,
        help="Number of lineitem rows to generate",
    )
    parser.add_argument(
        "--queries",
        type=query_list_arg,
        default=DEFAULT_QUERIES,
        help=f"Comma-separated queries to run (available: {DEFAULT_QUERIES})",
    )


def build_workload(config: RunConfiguration, args: argparse.Namespace) -> TPCHWorkload:
    return TPCHWorkload(
        config,
        rows=args.scale_rows,
        queries=args.queries,
    )


async def _prepare(env: RuntimeEnvironment, args: argparse.Namespace) -> WorkloadSummary:
    return await run_maintenance(env, build_workload(env.config, args), "prepare")


async def _run(env: RuntimeEnvironment, args: argparse.Namespace) -> WorkloadSummary:
    workload = build_workload(env.config, args)
    return await run_workloads(env, workload.name, [(workload, env.config.threads)])


async def _cleanup(env: RuntimeEnvironment, args: argparse.Namespace) -> WorkloadSummary:
    return await run_maintenance(env, build_workload(env.config, args), "cleanup")


def register(subparsers, common: argparse.ArgumentParser) -> None:
    """Register ``tpch {prepare,run,cleanup}``."""
    parser = subparsers.add_parser("tpch", help="TPC-H style analytical workload")
    actions = parser.add_subparsers(dest="action", metavar="ACTION", required=True)
    for action, handler, help_text in (
        ("prepare", _prepare, "Create tables and load data"),
        ("run", _run, "Run the query set"),
        ("cleanup", _cleanup, "Drop tables"),
    ):
        sub = actions.add_parser(action, parents=[common], help=help_text)
        add_tpch_flags(sub)
        sub.set_defaults(handler=handler)
