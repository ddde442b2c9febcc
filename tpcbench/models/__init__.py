"""
Data models for tpcbench.

This package contains Pydantic models for:
- Run configuration (connection target, concurrency, stop conditions)
- Workload summaries
"""

from tpcbench.models.run_config import (
    DriverName,
    IsolationLevel,
    RunConfiguration,
    idle_pool_capacity,
)

from tpcbench.models.summary import (
    OperationSummary,
    WorkloadSummary,
)

__all__ = [
    # run_config
    "DriverName",
    "IsolationLevel",
    "RunConfiguration",
    "idle_pool_capacity",
    # summary
    "OperationSummary",
    "WorkloadSummary",
]
