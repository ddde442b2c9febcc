"""
Workload Summary Models

Defines the Pydantic models a workload returns when it finishes.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field


class OperationSummary(BaseModel):
    """Counters and latency for one operation kind (e.g. NEW_ORDER, Q1)."""

    name: str = Field(..., description="Operation name")
    count: int = Field(0, description="Successful operations")
    error_count: int = Field(0, description="Failed operations")
    avg_ms: float = Field(0.0, description="Average latency (ms)")
    p50_ms: float = Field(0.0, description="50th percentile latency (ms)")
    p95_ms: float = Field(0.0, description="95th percentile latency (ms)")
    p99_ms: float = Field(0.0, description="99th percentile latency (ms)")
    max_ms: float = Field(0.0, description="Maximum latency (ms)")

    def tps(self, elapsed_seconds: float) -> float:
        """Successful operations per second."""
        if elapsed_seconds <= 0:
            return 0.0
        return self.count / elapsed_seconds

    def format_line(self, elapsed_seconds: float) -> str:
        return (
            f"[{self.name}] Takes(s): {elapsed_seconds:.1f}, Count: {self.count}, "
            f"TPS: {self.tps(elapsed_seconds):.1f}, Sum(ms): "
            f"{self.avg_ms * self.count:.1f}, Avg(ms): {self.avg_ms:.1f}, "
            f"50th(ms): {self.p50_ms:.1f}, 95th(ms): {self.p95_ms:.1f}, "
            f"99th(ms): {self.p99_ms:.1f}, Max(ms): {self.max_ms:.1f}, "
            f"Errors: {self.error_count}"
        )


class WorkloadSummary(BaseModel):
    """
    Final result of a workload command.

    ``error`` holds the first error that stopped the workload; it is None when
    the workload finished its budget or observed cancellation.
    """

    workload: str = Field(..., description="Workload name")
    action: str = Field("run", description="Sub-command (prepare/run/cleanup)")
    elapsed_seconds: float = Field(0.0, description="Wall-clock duration")
    operations: Dict[str, OperationSummary] = Field(default_factory=dict)
    cancelled: bool = Field(False, description="Stopped by cancellation")
    error: Optional[str] = Field(None, description="Fatal error, if any")

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def total_operations(self) -> int:
        return sum(op.count for op in self.operations.values())

    @property
    def total_errors(self) -> int:
        return sum(op.error_count for op in self.operations.values())

    def format_report(self) -> str:
        """Human-readable final report."""
        header = f"Finished {self.workload} {self.action}"
        if self.cancelled:
            header += " (cancelled)"
        lines = [header]
        for name in sorted(self.operations):
            lines.append(self.operations[name].format_line(self.elapsed_seconds))
        if self.operations:
            lines.append(
                f"Total: {self.total_operations} operations, {self.total_errors} errors"
            )
        if self.error:
            lines.append(f"Error: {self.error}")
        return "\n".join(lines)
