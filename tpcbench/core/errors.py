"""
Exception types raised by the benchmark control plane.
"""

from __future__ import annotations


class BenchmarkError(Exception):
    """Base class for tpcbench errors."""


class DatabaseOpenError(BenchmarkError):
    """
    The benchmark database could not be opened.

    Raised for every failure other than a missing database (which is created
    on the fly). The process must not run any workload after this.
    """

    def __init__(self, message: str, *, database: str | None = None):
        super().__init__(message)
        self.database = database


class UnsupportedIsolationLevelError(BenchmarkError):
    """The requested isolation level has no PostgreSQL equivalent."""


class WorkloadError(BenchmarkError):
    """A workload hit an error it is not allowed to ignore."""

    def __init__(self, message: str, *, operation: str | None = None):
        super().__init__(message)
        self.operation = operation
