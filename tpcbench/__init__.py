"""
tpcbench - database benchmark harness.

Dispatches TPC-style workloads against a shared PostgreSQL connection pool
with signal-driven, time-bounded shutdown.
"""

__version__ = "0.1.0"
