"""
Command dispatcher.

Builds the command-line tree (one sub-command per workload), turns the parsed
flags into a :class:`RunConfiguration`, and runs the selected command inside a
:class:`RuntimeEnvironment` guarded by the :class:`ShutdownController`.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, Sequence

from pydantic import ValidationError

from tpcbench import __version__
from tpcbench.config import settings
from tpcbench.core.durations import duration_arg
from tpcbench.core.errors import DatabaseOpenError
from tpcbench.core.runtime import RuntimeEnvironment
from tpcbench.core.shutdown import ShutdownController
from tpcbench.models.run_config import ISOLATION_HELP, SUPPORTED_DRIVERS, RunConfiguration
from tpcbench.models.summary import WorkloadSummary
from tpcbench.workloads import WORKLOAD_MODULES

logger = logging.getLogger(__name__)

PROG = "tpcbench"

ControllerFactory = Callable[[Callable[[], Any]], ShutdownController]


def build_common_parser() -> argparse.ArgumentParser:
    """Flags shared by every workload command."""
    parser = argparse.ArgumentParser(add_help=False)
    group = parser.add_argument_group("connection and run options")
    group.add_argument("-D", "--db", default=settings.DB_NAME, help="Database name")
    group.add_argument("-H", "--host", default=settings.DB_HOST, help="Database host")
    group.add_argument("-U", "--user", default=settings.DB_USER, help="Database user")
    group.add_argument(
        "-p", "--password", default=settings.DB_PASSWORD, help="Database password"
    )
    group.add_argument(
        "-P", "--port", type=int, default=settings.DB_PORT, help="Database port"
    )
    group.add_argument(
        "-T", "--threads", type=int, default=1, help="Thread concurrency"
    )
    group.add_argument(
        "-t",
        "--acThreads",
        dest="ac_threads",
        type=int,
        default=1,
        help="OLAP client concurrency, only for the mixed workload",
    )
    group.add_argument(
        "-d",
        "--driver",
        default=SUPPORTED_DRIVERS[0],
        choices=SUPPORTED_DRIVERS,
        help="Database driver",
    )
    group.add_argument(
        "--time",
        type=duration_arg,
        default=None,
        help="Total execution time, e.g. 90s or 1m30s (default: unbounded)",
    )
    group.add_argument(
        "--count",
        type=int,
        default=0,
        help="Total execution count, 0 means infinite",
    )
    group.add_argument(
        "--dropdata", action="store_true", help="Cleanup data before prepare"
    )
    group.add_argument(
        "--ignore-error",
        action="store_true",
        help="Ignore error when running workload",
    )
    group.add_argument(
        "--silence",
        action="store_true",
        help="Don't print error when running workload",
    )
    group.add_argument(
        "--interval",
        type=duration_arg,
        default=settings.OUTPUT_INTERVAL_SECONDS,
        help="Output interval time",
    )
    group.add_argument(
        "--isolation",
        type=int,
        default=0,
        choices=range(0, 8),
        metavar="{0..7}",
        help=ISOLATION_HELP,
    )
    group.add_argument("--conn-params", default="", help="Session variables")
    group.add_argument(
        "--max-procs",
        type=int,
        default=0,
        help="Worker threads for blocking helpers (0 = Python default)",
    )
    group.add_argument("--pprof", default="", help="Address of profiling endpoint")
    group.add_argument(
        "--metrics-addr", default="", help="Address of metrics endpoint"
    )
    return parser


def build_parser() -> argparse.ArgumentParser:
    """Build the full command tree."""
    parser = argparse.ArgumentParser(
        prog=PROG,
        description="Benchmark database with different workloads",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)

    version = subparsers.add_parser("version", help="Print version information")
    version.set_defaults(handler=None, needs_runtime=False)

    common = build_common_parser()
    for module in WORKLOAD_MODULES:
        module.register(subparsers, common)
    return parser


def version_text() -> str:
    return f"{PROG} {__version__} (Python {sys.version.split()[0]})"


def summary_exit_code(result: Any) -> int:
    """Translate a command result into a process exit status."""
    if result is None:
        return 0
    if isinstance(result, WorkloadSummary):
        return 0 if result.ok else 1
    return int(result)


async def dispatch(args: argparse.Namespace, env: RuntimeEnvironment) -> int:
    """
    Run the selected command against ``env``.

    Raises:
        DatabaseOpenError: propagated from the connection manager
    """
    result = await args.handler(env, args)
    if isinstance(result, WorkloadSummary):
        print(result.format_report())
    return summary_exit_code(result)


def _apply_operational_flags(config: RunConfiguration) -> None:
    if config.max_procs > 0:
        asyncio.get_running_loop().set_default_executor(
            ThreadPoolExecutor(max_workers=config.max_procs)
        )
    if config.pprof_addr:
        logger.info("Profiling endpoint requested at %s (not served)", config.pprof_addr)
    if config.metrics_addr:
        logger.info("Metrics endpoint requested at %s (not served)", config.metrics_addr)


async def run_command(
    args: argparse.Namespace,
    config: RunConfiguration,
    *,
    controller_factory: Optional[ControllerFactory] = None,
    install_signals: bool = True,
    env: Optional[RuntimeEnvironment] = None,
) -> int:
    """
    Run one workload command with signal-driven shutdown.

    Returns:
        0 on clean completion, 1 on fatal startup error, workload error or
        forced exit
    """
    env = env if env is not None else RuntimeEnvironment(config)
    factory = controller_factory or ShutdownController
    controller = factory(env.context.cancel)
    if install_signals:
        controller.install()
    else:
        controller.start()

    _apply_operational_flags(config)
    logger.debug("Run configuration: %s", config.redacted())

    code = 1
    try:
        code = await dispatch(args, env)
    except DatabaseOpenError as e:
        logger.error("❌ Cannot open database: %s", e)
        print(f"Cannot open database: {e}", file=sys.stderr)
        code = 1
    finally:
        controller.notify_done()
        await controller.wait()
        controller.uninstall()
        env.context.cancel()
        await env.close_db()

    if controller.forced_exit:
        return controller.exit_code
    return code


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Parse ``argv``, run the selected command and return the exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "needs_runtime", True):
        print(version_text())
        return 0

    try:
        config = RunConfiguration.from_args(args)
    except ValidationError as e:
        parser.error(str(e))

    return asyncio.run(run_command(args, config))
