"""
Workload commands.

Each module exposes ``register(subparsers, common)`` which adds its
sub-command tree to the dispatcher.
"""

from tpcbench.workloads import ch, rawsql, tpcc, tpch

WORKLOAD_MODULES = (tpcc, tpch, ch, rawsql)

__all__ = ["WORKLOAD_MODULES", "ch", "rawsql", "tpcc", "tpch"]
