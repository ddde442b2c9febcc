"""
TPC-C style transactional workload.

A reduced TPC-C: the standard table layout with generated data, and a
transaction mix of New-Order, Payment, Order-Status and Stock-Level run under
the configured isolation level.
"""

from __future__ import annotations

import argparse
import logging
import random
from decimal import Decimal

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

DISTRICTS_PER_WAREHOUSE = 10

TABLES = (
    "order_line",
    "orders",
    "history",
    "stock",
    "customer",
    "district",
    "warehouse",
    "item",
)

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS warehouse (
    w_id INT PRIMARY KEY,
    w_name VARCHAR(10),
    w_tax NUMERIC(4, 4),
    w_ytd NUMERIC(12, 2)
);
CREATE TABLE IF NOT EXISTS district (
    d_w_id INT,
    d_id INT,
    d_name VARCHAR(10),
    d_tax NUMERIC(4, 4),
    d_ytd NUMERIC(12, 2),
    d_next_o_id INT,
    PRIMARY KEY (d_w_id, d_id)
);
CREATE TABLE IF NOT EXISTS customer (
    c_w_id INT,
    c_d_id INT,
    c_id INT,
    c_last VARCHAR(16),
    c_discount NUMERIC(4, 4),
    c_balance NUMERIC(12, 2),
    c_ytd_payment NUMERIC(12, 2),
    c_payment_cnt INT,
    PRIMARY KEY (c_w_id, c_d_id, c_id)
);
CREATE TABLE IF NOT EXISTS history (
    h_c_id INT,
    h_c_d_id INT,
    h_c_w_id INT,
    h_d_id INT,
    h_w_id INT,
    h_date TIMESTAMP,
    h_amount NUMERIC(6, 2)
);
CREATE TABLE IF NOT EXISTS item (
    i_id INT PRIMARY KEY,
    i_name VARCHAR(24),
    i_price NUMERIC(5, 2)
);
CREATE TABLE IF NOT EXISTS stock (
    s_w_id INT,
    s_i_id INT,
    s_quantity INT,
    s_ytd INT,
    s_order_cnt INT,
    PRIMARY KEY (s_w_id, s_i_id)
);
CREATE TABLE IF NOT EXISTS orders (
    o_w_id INT,
    o_d_id INT,
    o_id INT,
    o_c_id INT,
    o_entry_d TIMESTAMP,
    o_ol_cnt INT,
    PRIMARY KEY (o_w_id, o_d_id, o_id)
);
CREATE TABLE IF NOT EXISTS order_line (
    ol_w_id INT,
    ol_d_id INT,
    ol_o_id INT,
    ol_number INT,
    ol_i_id INT,
    ol_quantity INT,
    ol_amount NUMERIC(6, 2),
    PRIMARY KEY (ol_w_id, ol_d_id, ol_o_id, ol_number)
);
"""

LOAD_STEPS = (
    (
        "item",
        "INSERT INTO item "
        "SELECT i, 'item-' || i, round((1 + random() * 99)::numeric, 2) "
        "FROM generate_series(1, $1) AS i",
        ("items",),
    ),
    (
        "warehouse",
        "INSERT INTO warehouse "
        "SELECT w, 'wh-' || w, round((random() * 0.2)::numeric, 4), 300000 "
        "FROM generate_series(1, $1) AS w",
        ("warehouses",),
    ),
    (
        "district",
        "INSERT INTO district "
        "SELECT w, d, 'd-' || d, round((random() * 0.2)::numeric, 4), 30000, 1 "
        "FROM generate_series(1, $1) AS w, generate_series(1, 10) AS d",
        ("warehouses",),
    ),
    (
        "customer",
        "INSERT INTO customer "
        "SELECT w, d, c, 'cust-' || c, round((random() * 0.5)::numeric, 4), "
        "-10, 10, 1 "
        "FROM generate_series(1, $1) AS w, generate_series(1, 10) AS d, "
        "generate_series(1, $2) AS c",
        ("warehouses", "customers"),
    ),
    (
        "stock",
        "INSERT INTO stock "
        "SELECT w, i, 10 + floor(random() * 91)::int, 0, 0 "
        "FROM generate_series(1, $1) AS w, generate_series(1, $2) AS i",
        ("warehouses", "items"),
    ),
)

# Transaction mix weights (percent).
TRANSACTION_MIX = {
    "NEW_ORDER": 45,
    "PAYMENT": 43,
    "ORDER_STATUS": 6,
    "STOCK_LEVEL": 6,
}


class TPCCWorkload(Workload):
    """Reduced TPC-C transaction mix."""

    name = "tpcc"

    def __init__(
        self,
        config: RunConfiguration,
        *,
        warehouses: int = 4,
        items: int = 10000,
        customers: int = 300,
    ):
        super().__init__(config)
        if min(warehouses, items, customers) < 1:
            raise ValueError("warehouses, items and customers must be at least 1")
        self.warehouses = warehouses
        self.items = items
        self.customers = customers
        self._tx_names = list(TRANSACTION_MIX)
        self._tx_weights = list(TRANSACTION_MIX.values())

    def preflight(self) -> None:
        # fail fast on isolation levels Postgres cannot provide
        self.config.isolation_level.asyncpg_isolation()

    async def prepare(self, db: PostgresConnectionPool, ctx: ProcessContext) -> None:
        if self.config.drop_data:
            await self.cleanup(db, ctx)

        await db.execute_script(CREATE_TABLES_SQL)
        loaded = await db.fetch_val("SELECT count(*) FROM warehouse")
        if loaded:
            logger.info("tpcc: %d warehouses already loaded, skipping load", loaded)
            return

        for table, sql, params in LOAD_STEPS:
            if ctx.cancelled:
                logger.warning("tpcc: load cancelled before %s", table)
                return
            logger.info("tpcc: loading %s", table)
            await db.execute(sql, *(getattr(self, p) for p in params))
        await db.execute_script("ANALYZE " + ", ".join(TABLES))
        logger.info(
            "tpcc: loaded %d warehouses, %d items, %d customers per district",
            self.warehouses,
            self.items,
            self.customers,
        )

    async def cleanup(self, db: PostgresConnectionPool, ctx: ProcessContext) -> None:
        logger.info("tpcc: dropping tables")
        await db.execute_script(
            "".join(f"DROP TABLE IF EXISTS {table};" for table in TABLES)
        )

    def next_operation(self, worker_id: int, rng: random.Random) -> Operation:
        name = rng.choices(self._tx_names, weights=self._tx_weights)[0]
        w_id = rng.randint(1, self.warehouses)
        d_id = rng.randint(1, DISTRICTS_PER_WAREHOUSE)
        c_id = rng.randint(1, self.customers)

        if name == "NEW_ORDER":
            ol_cnt = rng.randint(5, 15)
            # stock rows are locked in item order
            lines = [
                (number, item_id, rng.randint(1, 10))
                for number, item_id in enumerate(
                    sorted(rng.sample(range(1, self.items + 1), min(ol_cnt, self.items))),
                    start=1,
                )
            ]

            async def execute(db: PostgresConnectionPool) -> None:
                await self._new_order(db, w_id, d_id, c_id, lines)

        elif name == "PAYMENT":
            amount = Decimal(rng.randint(100, 500000)) / 100

            async def execute(db: PostgresConnectionPool) -> None:
                await self._payment(db, w_id, d_id, c_id, amount)

        elif name == "ORDER_STATUS":

            async def execute(db: PostgresConnectionPool) -> None:
                await self._order_status(db, w_id, d_id, c_id)

        else:
            threshold = rng.randint(10, 20)

            async def execute(db: PostgresConnectionPool) -> None:
                await self._stock_level(db, w_id, d_id, threshold)

        return Operation(name=name, execute=execute)

    async def _new_order(
        self,
        db: PostgresConnectionPool,
        w_id: int,
        d_id: int,
        c_id: int,
        lines: list[tuple[int, int, int]],
    ) -> None:
        async with db.transaction() as conn:
            o_id = await conn.fetchval(
                "UPDATE district SET d_next_o_id = d_next_o_id + 1 "
                "WHERE d_w_id = $1 AND d_id = $2 RETURNING d_next_o_id - 1",
                w_id,
                d_id,
            )
            await conn.fetchrow(
                "SELECT c_discount, c_last FROM customer "
                "WHERE c_w_id = $1 AND c_d_id = $2 AND c_id = $3",
                w_id,
                d_id,
                c_id,
            )
            await conn.execute(
                "INSERT INTO orders (o_w_id, o_d_id, o_id, o_c_id, o_entry_d, o_ol_cnt) "
                "VALUES ($1, $2, $3, $4, now(), $5)",
                w_id,
                d_id,
                o_id,
                c_id,
                len(lines),
            )
            for number, item_id, quantity in lines:
                price = await conn.fetchval(
                    "SELECT i_price FROM item WHERE i_id = $1", item_id
                )
                await conn.execute(
                    "UPDATE stock SET "
                    "s_quantity = CASE WHEN s_quantity - $3 >= 10 "
                    "THEN s_quantity - $3 ELSE s_quantity - $3 + 91 END, "
                    "s_ytd = s_ytd + $3, s_order_cnt = s_order_cnt + 1 "
                    "WHERE s_w_id = $1 AND s_i_id = $2",
                    w_id,
                    item_id,
                    quantity,
                )
                await conn.execute(
                    "INSERT INTO order_line (ol_w_id, ol_d_id, ol_o_id, ol_number, "
                    "ol_i_id, ol_quantity, ol_amount) "
                    "VALUES ($1, $2, $3, $4, $5, $6, $7)",
                    w_id,
                    d_id,
                    o_id,
                    number,
                    item_id,
                    quantity,
                    (price or Decimal(0)) * quantity,
                )

    async def _payment(
        self,
        db: PostgresConnectionPool,
        w_id: int,
        d_id: int,
        c_id: int,
        amount: Decimal,
    ) -> None:
        async with db.transaction() as conn:
            await conn.execute(
                "UPDATE warehouse SET w_ytd = w_ytd + $2 WHERE w_id = $1", w_id, amount
            )
            await conn.execute(
                "UPDATE district SET d_ytd = d_ytd + $3 "
                "WHERE d_w_id = $1 AND d_id = $2",
                w_id,
                d_id,
                amount,
            )
            await conn.execute(
                "UPDATE customer SET c_balance = c_balance - $4, "
                "c_ytd_payment = c_ytd_payment + $4, "
                "c_payment_cnt = c_payment_cnt + 1 "
                "WHERE c_w_id = $1 AND c_d_id = $2 AND c_id = $3",
                w_id,
                d_id,
                c_id,
                amount,
            )
            await conn.execute(
                "INSERT INTO history (h_c_id, h_c_d_id, h_c_w_id, h_d_id, h_w_id, "
                "h_date, h_amount) VALUES ($3, $2, $1, $2, $1, now(), $4)",
                w_id,
                d_id,
                c_id,
                amount,
            )

    async def _order_status(
        self, db: PostgresConnectionPool, w_id: int, d_id: int, c_id: int
    ) -> None:
        async with db.transaction() as conn:
            await conn.fetchrow(
                "SELECT c_balance, c_last FROM customer "
                "WHERE c_w_id = $1 AND c_d_id = $2 AND c_id = $3",
                w_id,
                d_id,
                c_id,
            )
            o_id = await conn.fetchval(
                "SELECT max(o_id) FROM orders "
                "WHERE o_w_id = $1 AND o_d_id = $2 AND o_c_id = $3",
                w_id,
                d_id,
                c_id,
            )
            if o_id is not None:
                await conn.fetch(
                    "SELECT ol_i_id, ol_quantity, ol_amount FROM order_line "
                    "WHERE ol_w_id = $1 AND ol_d_id = $2 AND ol_o_id = $3",
                    w_id,
                    d_id,
                    o_id,
                )

    async def _stock_level(
        self, db: PostgresConnectionPool, w_id: int, d_id: int, threshold: int
    ) -> None:
        async with db.transaction() as conn:
            await conn.fetchval(
                "SELECT count(DISTINCT s_i_id) FROM order_line "
                "JOIN stock ON s_w_id = ol_w_id AND s_i_id = ol_i_id "
                "WHERE ol_w_id = $1 AND ol_d_id = $2 AND ol_o_id >= ("
                "SELECT d_next_o_id - 20 FROM district WHERE d_w_id = $1 AND d_id = $2"
                ") AND s_quantity < $3",
                w_id,
                d_id,
                threshold,
            )


def add_tpcc_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--warehouses", type=positive_int, default=4, help="Number of warehouses"
    )
    parser.add_argument(
        "--items",
        type=positive_int,
        default=10000,
        help="Number of items (catalog size)",
    )
    parser.add_argument(
        "--customers",
        type=positive_int,
        default=300,
        help="Customers per district",
    )


def build_workload(config: RunConfiguration, args: argparse.Namespace) -> TPCCWorkload:
    return TPCCWorkload(
        config,
        warehouses=args.warehouses,
        items=args.items,
        customers=args.customers,
    )


async def _prepare(env: RuntimeEnvironment, args: argparse.Namespace) -> WorkloadSummary:
    return await run_maintenance(env, build_workload(env.config, args), "prepare")


async def _run(env: RuntimeEnvironment, args: argparse.Namespace) -> WorkloadSummary:
    workload = build_workload(env.config, args)
    return await run_workloads(env, workload.name, [(workload, env.config.threads)])


async def _cleanup(env: RuntimeEnvironment, args: argparse.Namespace) -> WorkloadSummary:
    return await run_maintenance(env, build_workload(env.config, args), "cleanup")


def register(subparsers, common: argparse.ArgumentParser) -> None:
    """Register ``tpcc {prepare,run,cleanup}``."""
    parser = subparsers.add_parser("tpcc", help="TPC-C style transactional workload")
    actions = parser.add_subparsers(dest="action", metavar="ACTION", required=True)
    for action, handler, help_text in (
        ("prepare", _prepare, "Create tables and load data"),
        ("run", _run, "Run the transaction mix"),
        ("cleanup", _cleanup, "Drop tables"),
    ):
        sub = actions.add_parser(action, parents=[common], help=help_text)
        add_tpcc_flags(sub)
        sub.set_defaults(handler=handler)
