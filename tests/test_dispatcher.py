"""
Unit tests for the command dispatcher and process entry point.
"""

from __future__ import annotations

import asyncio
import signal
from unittest.mock import AsyncMock, MagicMock

import pytest

from tpcbench import __version__
from tpcbench.core.dispatcher import build_parser, run, run_command, summary_exit_code
from tpcbench.core.errors import DatabaseOpenError
from tpcbench.core.runtime import RuntimeEnvironment
from tpcbench.core.shutdown import ShutdownController, ShutdownState
from tpcbench.main import main
from tpcbench.models.summary import WorkloadSummary
from tpcbench.workloads import rawsql, tpcc, tpch


class TestParser:
    def test_workload_flags(self) -> None:
        args = build_parser().parse_args(
            ["tpcc", "run", "-T", "8", "-t", "2", "--time", "1m30s", "--isolation", "2",
             "--warehouses", "10", "-D", "tpcc_db"]
        )

        assert args.command == "tpcc"
        assert args.action == "run"
        assert args.handler is tpcc._run
        assert args.threads == 8
        assert args.ac_threads == 2
        assert args.time == 90.0
        assert args.isolation == 2
        assert args.warehouses == 10
        assert args.db == "tpcc_db"

    def test_mixed_workload_has_both_flag_sets(self) -> None:
        args = build_parser().parse_args(["ch", "run", "--warehouses", "2", "--queries", "q1"])
        assert args.warehouses == 2
        assert args.queries == ["q1"]

    def test_long_ac_threads_flag(self) -> None:
        args = build_parser().parse_args(["ch", "run", "--acThreads", "3"])
        assert args.ac_threads == 3

    @pytest.mark.parametrize(
        "argv",
        [
            [],
            ["bogus"],
            ["tpcc"],
            ["tpcc", "explode"],
            ["tpcc", "run", "--isolation", "9"],
            ["tpcc", "run", "--time", "soon"],
            ["rawsql", "prepare"],
            ["tpch", "run", "--queries", "q99"],
            ["tpch", "run", "--queries", ","],
            ["tpch", "prepare", "--scale-rows", "0"],
            ["ch", "run", "--queries", "q1,q2"],
            ["tpcc", "run", "--warehouses", "0"],
            ["tpcc", "prepare", "--items", "-5"],
            ["ch", "prepare", "--customers", "0"],
            ["tpcc", "run", "--warehouses", "many"],
        ],
    )
    def test_usage_errors_exit_2(self, argv: list[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(argv)
        assert exc_info.value.code == 2

    def test_default_query_list(self) -> None:
        args = build_parser().parse_args(["tpch", "run"])
        assert args.queries == ["q1", "q6", "q14", "q15"]

    @pytest.mark.parametrize(
        "argv",
        [
            ["tpch", "run", "--queries", "q99", "--count", "1"],
            ["tpcc", "run", "--warehouses", "0", "--count", "1"],
        ],
    )
    def test_bad_workload_flags_exit_before_running(self, argv: list[str], capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run(argv)
        assert exc_info.value.code == 2
        assert "usage:" in capsys.readouterr().err

    def test_invalid_configuration_exits_2(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            run(["tpch", "run", "-T", "0"])
        assert exc_info.value.code == 2

    def test_version(self, capsys) -> None:
        assert run(["version"]) == 0
        assert __version__ in capsys.readouterr().out

    def test_main_version(self, capsys) -> None:
        assert main(["version"]) == 0
        assert "tpcbench" in capsys.readouterr().out


class TestSummaryExitCode:
    def test_codes(self) -> None:
        assert summary_exit_code(None) == 0
        assert summary_exit_code(WorkloadSummary(workload="x")) == 0
        assert summary_exit_code(WorkloadSummary(workload="x", error="bad")) == 1
        assert summary_exit_code(3) == 3


def _env(config, pool=None, *, error: Exception | None = None) -> RuntimeEnvironment:
    opener = AsyncMock(side_effect=error) if error else AsyncMock(return_value=pool)
    return RuntimeEnvironment(config, opener=opener)


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_clean_run(self, run_config, fake_pool, capsys) -> None:
        config = run_config(total_count=3)
        args = build_parser().parse_args(["tpch", "run", "--queries", "q1,q6"])
        env = _env(config, fake_pool)

        code = await run_command(args, config, env=env, install_signals=False)

        assert code == 0
        assert "Finished tpch run" in capsys.readouterr().out
        assert fake_pool.fetch_all.await_count == 3
        assert fake_pool.closed
        assert not env.db_open

    @pytest.mark.asyncio
    async def test_database_open_error(self, run_config, capsys) -> None:
        config = run_config(total_count=1)
        args = build_parser().parse_args(["tpch", "run"])
        env = _env(config, error=DatabaseOpenError("access denied", database="bench"))

        code = await run_command(args, config, env=env, install_signals=False)

        assert code == 1
        assert "Cannot open database: access denied" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_unsupported_isolation_never_opens(self, run_config, fake_pool) -> None:
        config = run_config(isolation_level=7)
        args = build_parser().parse_args(["tpcc", "run"])
        env = _env(config, fake_pool)

        code = await run_command(args, config, env=env, install_signals=False)

        assert code == 1
        env._opener.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rawsql_missing_file(self, run_config, fake_pool, tmp_path) -> None:
        config = run_config()
        args = build_parser().parse_args(
            ["rawsql", "run", "--query-files", str(tmp_path / "missing.sql")]
        )
        env = _env(config, fake_pool)

        code = await run_command(args, config, env=env, install_signals=False)

        assert code == 1
        assert args.handler is rawsql._run
        env._opener.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_signal_cancels_and_completes(self, run_config, fake_pool) -> None:
        """First signal cancels the run; returning inside the grace period exits 0."""
        config = run_config()
        env = _env(config, fake_pool)
        controllers: list[ShutdownController] = []
        exit_func = MagicMock()

        def factory(cancel):
            controller = ShutdownController(cancel, grace_seconds=5.0, exit_func=exit_func)
            controllers.append(controller)
            return controller

        async def handler(env, args):
            await env.context.wait()
            return WorkloadSummary(workload="wait", cancelled=True)

        args = MagicMock(handler=handler)
        asyncio.get_running_loop().call_later(
            0.02, lambda: controllers[0].notify_signal(signal.SIGINT)
        )

        code = await asyncio.wait_for(
            run_command(args, config, env=env, controller_factory=factory, install_signals=False),
            timeout=2.0,
        )

        assert code == 0
        assert controllers[0].state is ShutdownState.TERMINATED
        exit_func.assert_not_called()

    @pytest.mark.asyncio
    async def test_stuck_workload_is_forced(self, run_config) -> None:
        config = run_config()
        env = _env(config)
        controllers: list[ShutdownController] = []
        exit_func = MagicMock()

        def factory(cancel):
            controller = ShutdownController(cancel, grace_seconds=0.05, exit_func=exit_func)
            controllers.append(controller)
            return controller

        async def handler(env, args):
            await asyncio.sleep(0.3)
            return None

        args = MagicMock(handler=handler)
        asyncio.get_running_loop().call_later(
            0.01, lambda: controllers[0].notify_signal(signal.SIGTERM)
        )

        code = await run_command(
            args, config, env=env, controller_factory=factory, install_signals=False
        )

        assert code == 1
        assert controllers[0].forced_exit
        exit_func.assert_called_once_with(1)
