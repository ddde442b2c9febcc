"""
Runtime environment handed to every command.

Holds the run configuration, the process context and the lazily opened
database handle. Each instance is independent, so tests can build as many as
they need.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from tpcbench.connectors.postgres_pool import (
    PostgresConnectionPool,
    close_pool,
    open_pool,
)
from tpcbench.core.context import ProcessContext
from tpcbench.models.run_config import RunConfiguration

logger = logging.getLogger(__name__)

PoolOpener = Callable[[RunConfiguration], Awaitable[PostgresConnectionPool]]


class RuntimeEnvironment:
    """
    Process-wide state for one run, passed explicitly instead of via globals.

    At most one database handle is live at a time: :meth:`reopen_db` closes
    the current handle before opening a new one. Only this object closes the
    handle; workloads must not.
    """

    def __init__(
        self,
        config: RunConfiguration,
        *,
        context: Optional[ProcessContext] = None,
        opener: PoolOpener = open_pool,
    ):
        self.config = config
        self.context = context if context is not None else ProcessContext(name="process")
        self._opener = opener
        self._db: Optional[PostgresConnectionPool] = None
        self._lock = asyncio.Lock()

    @property
    def db_open(self) -> bool:
        return self._db is not None and not self._db.closed

    async def open_db(self) -> PostgresConnectionPool:
        """
        Return the shared handle, opening it on first use.

        Raises:
            DatabaseOpenError: the database cannot be opened or created
        """
        async with self._lock:
            if self._db is not None and not self._db.closed:
                return self._db
            self._db = await self._opener(self.config)
            return self._db

    async def reopen_db(self) -> PostgresConnectionPool:
        """Close the current handle (if any) and open a fresh one."""
        async with self._lock:
            old, self._db = self._db, None
            await close_pool(old)
            self._db = await self._opener(self.config)
            return self._db

    async def close_db(self) -> None:
        """Close the handle. Idempotent."""
        async with self._lock:
            old, self._db = self._db, None
            await close_pool(old)

    async def __aenter__(self) -> "RuntimeEnvironment":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.context.cancel()
        await self.close_db()
