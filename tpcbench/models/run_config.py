"""
Run Configuration Models

Defines the immutable configuration shared by every workload of a run:
- Connection target (host, port, credentials, database, session parameters)
- Concurrency (transactional and analytical thread counts)
- Stop conditions (time budget, iteration budget)
- Error policy and output flags
- Transaction isolation level
"""

from __future__ import annotations

import argparse
from enum import Enum, IntEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tpcbench.core.errors import UnsupportedIsolationLevelError


class DriverName(str, Enum):
    """Supported database drivers."""

    POSTGRES = "postgres"


SUPPORTED_DRIVERS = tuple(d.value for d in DriverName)


class IsolationLevel(IntEnum):
    """Transaction isolation levels accepted by ``--isolation``."""

    DEFAULT = 0
    READ_UNCOMMITTED = 1
    READ_COMMITTED = 2
    WRITE_COMMITTED = 3
    REPEATABLE_READ = 4
    SNAPSHOT = 5
    SERIALIZABLE = 6
    LINEARIZABLE = 7

    def asyncpg_isolation(self) -> Optional[str]:
        """
        Map to the isolation name understood by ``asyncpg.Connection.transaction``.

        Returns None for DEFAULT (use the server's default_transaction_isolation).

        Raises:
            UnsupportedIsolationLevelError: WRITE_COMMITTED and LINEARIZABLE
        """
        try:
            return _ASYNCPG_ISOLATION[self]
        except KeyError:
            raise UnsupportedIsolationLevelError(
                f"isolation level {self.name} ({int(self)}) is not supported by PostgreSQL"
            ) from None


# Postgres repeatable read is implemented as snapshot isolation.
_ASYNCPG_ISOLATION: dict[IsolationLevel, Optional[str]] = {
    IsolationLevel.DEFAULT: None,
    IsolationLevel.READ_UNCOMMITTED: "read_uncommitted",
    IsolationLevel.READ_COMMITTED: "read_committed",
    IsolationLevel.REPEATABLE_READ: "repeatable_read",
    IsolationLevel.SNAPSHOT: "repeatable_read",
    IsolationLevel.SERIALIZABLE: "serializable",
}

ISOLATION_HELP = (
    "Isolation Level 0: Default, 1: ReadUncommitted, 2: ReadCommitted, "
    "3: WriteCommitted, 4: RepeatableRead, 5: Snapshot, 6: Serializable, "
    "7: Linearizable"
)


class RunConfiguration(BaseModel):
    """
    Scalar options for one benchmark run.

    Built once after argument parsing and read-only afterwards; every workload
    receives the same instance.
    """

    model_config = ConfigDict(frozen=True)

    # Connection target
    db_name: str = Field(..., min_length=1, description="Database name")
    host: str = Field("127.0.0.1", description="Database host")
    port: int = Field(5432, ge=1, le=65535, description="Database port")
    user: str = Field("postgres", description="Database user")
    password: str = Field("", description="Database password")
    driver: str = Field(DriverName.POSTGRES.value, description="Database driver")
    conn_params: str = Field(
        "", description="Session parameters appended to the connection string"
    )

    # Concurrency
    threads: int = Field(1, ge=1, description="Transactional thread concurrency")
    ac_threads: int = Field(1, ge=1, description="Analytical thread concurrency")

    # Stop conditions
    total_time: Optional[float] = Field(
        None, gt=0, description="Total execution time in seconds (None = unbounded)"
    )
    total_count: int = Field(
        0, ge=0, description="Total execution count, 0 means unbounded"
    )

    # Error policy and output
    drop_data: bool = Field(False, description="Cleanup data before prepare")
    ignore_error: bool = Field(False, description="Ignore errors while running")
    silence: bool = Field(False, description="Do not log individual errors")
    output_interval: float = Field(10.0, gt=0, description="Progress interval (s)")
    isolation_level: IsolationLevel = Field(
        IsolationLevel.DEFAULT, description="Transaction isolation level"
    )

    # Operational
    max_procs: int = Field(0, ge=0, description="Blocking executor size (0 = default)")
    pprof_addr: str = Field("", description="Profiling endpoint address")
    metrics_addr: str = Field("", description="Metrics endpoint address")

    @field_validator("driver")
    @classmethod
    def _validate_driver(cls, v: str) -> str:
        driver = (v or DriverName.POSTGRES.value).strip().lower()
        if driver not in SUPPORTED_DRIVERS:
            raise ValueError(
                f"unsupported driver {v!r}; supported: {', '.join(SUPPORTED_DRIVERS)}"
            )
        return driver

    @field_validator("conn_params")
    @classmethod
    def _strip_conn_params(cls, v: str) -> str:
        return (v or "").strip().lstrip("?&")

    @property
    def idle_pool_capacity(self) -> int:
        """Pool capacity: one connection per worker plus one for auxiliary queries."""
        return idle_pool_capacity(self.threads, self.ac_threads)

    @property
    def unbounded(self) -> bool:
        return self.total_time is None and self.total_count == 0

    def redacted(self) -> dict[str, Any]:
        """Dump for logging with the password masked."""
        data = self.model_dump()
        if data.get("password"):
            data["password"] = "***"
        data["isolation_level"] = self.isolation_level.name
        return data

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "RunConfiguration":
        """Build the configuration from parsed command-line flags."""
        return cls(
            db_name=args.db,
            host=args.host,
            port=args.port,
            user=args.user,
            password=args.password,
            driver=args.driver,
            conn_params=args.conn_params,
            threads=args.threads,
            ac_threads=args.ac_threads,
            total_time=args.time,
            total_count=args.count,
            drop_data=args.dropdata,
            ignore_error=args.ignore_error,
            silence=args.silence,
            output_interval=args.interval,
            isolation_level=IsolationLevel(args.isolation),
            max_procs=args.max_procs,
            pprof_addr=args.pprof,
            metrics_addr=args.metrics_addr,
        )


def idle_pool_capacity(threads: int, ac_threads: int) -> int:
    """Return ``threads + ac_threads + 1``."""
    return threads + ac_threads + 1
