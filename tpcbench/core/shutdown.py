"""
Signal-driven shutdown controller.

The first termination signal cancels the process context (exactly once) and
starts a grace period. Whichever of these happens first then decides how the
process ends:

- a second signal: forced exit with status 1
- the grace period elapses: forced exit with status 1
- the dispatched command returns: normal shutdown
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from tpcbench.config import settings

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS: tuple[signal.Signals, ...] = (
    signal.SIGHUP,
    signal.SIGINT,
    signal.SIGTERM,
    signal.SIGQUIT,
)

FORCED_EXIT_STATUS = 1


class ShutdownState(str, Enum):
    """Lifecycle of the controller."""

    RUNNING = "running"
    CANCELLING = "cancelling"
    FORCED_EXIT = "forced_exit"
    TERMINATED = "terminated"


class ShutdownEvent(str, Enum):
    """Events raced against each other while cancelling."""

    SECOND_SIGNAL = "second_signal"
    GRACE_EXPIRED = "grace_expired"
    COMPLETED = "completed"


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


class ShutdownController:
    """
    Owns the process context's cancel function and the grace-period race.

    Usage:
        controller = ShutdownController(env.context.cancel)
        controller.install()
        try:
            code = await run_command()
        finally:
            controller.notify_done()
            await controller.wait()
            controller.uninstall()
    """

    def __init__(
        self,
        cancel: Callable[[], Any],
        *,
        grace_seconds: Optional[float] = None,
        signals: Sequence[int] = DEFAULT_SIGNALS,
        exit_func: Callable[[int], Any] = os._exit,
    ):
        """
        Args:
            cancel: Cancels the process context; invoked at most once
            grace_seconds: Wait after the first signal before forcing exit
            signals: Signals treated as "begin graceful shutdown"
            exit_func: Terminates the process; receives the exit status
        """
        self._cancel = cancel
        self.grace_seconds = (
            settings.SHUTDOWN_GRACE_SECONDS if grace_seconds is None else grace_seconds
        )
        self.signals = tuple(signals)
        self._exit_func = exit_func

        self.state = ShutdownState.RUNNING
        self.signal_count = 0
        self.first_signal: Optional[int] = None
        self.decided_by: Optional[ShutdownEvent] = None

        self._signalled = asyncio.Event()
        self._decided = asyncio.Event()
        self._done = False
        self._grace_timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed: list[int] = []

    @property
    def forced_exit(self) -> bool:
        return self.state is ShutdownState.FORCED_EXIT

    @property
    def exit_code(self) -> int:
        return FORCED_EXIT_STATUS if self.forced_exit else 0

    def install(self) -> None:
        """Register signal handlers and start the listener task."""
        self._loop = asyncio.get_running_loop()
        for sig in self.signals:
            try:
                self._loop.add_signal_handler(sig, self.notify_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                logger.debug("Cannot install handler for %s: %s", _signal_name(sig), e)
                continue
            self._installed.append(sig)
        self.start()

    def start(self) -> None:
        """Start the listener task without touching signal handlers."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(
                self._listen(), name="shutdown-controller"
            )

    def uninstall(self) -> None:
        """Remove the signal handlers installed by :meth:`install`."""
        if self._loop is None:
            return
        for sig in self._installed:
            try:
                self._loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                logger.debug("Cannot remove handler for %s: %s", _signal_name(sig), e)
        self._installed = []

    def notify_signal(self, signum: int) -> None:
        """Record delivery of a termination signal."""
        if self.state in (ShutdownState.FORCED_EXIT, ShutdownState.TERMINATED):
            return
        self.signal_count += 1
        if self.signal_count == 1:
            self.first_signal = signum
            self._signalled.set()
        else:
            print(
                f"\nGot signal [{_signal_name(signum)}] again to exit.",
                file=sys.stderr,
            )
            self._decide(ShutdownEvent.SECOND_SIGNAL)

    def notify_done(self) -> None:
        """The dispatched command has returned control."""
        self._done = True
        if self.state is ShutdownState.RUNNING and self.signal_count == 0:
            self.state = ShutdownState.TERMINATED
            self._signalled.set()
            return
        self._decide(ShutdownEvent.COMPLETED)

    async def wait(self) -> ShutdownState:
        """Wait for the listener task to finish and return the final state."""
        if self._task is not None:
            await self._task
        return self.state

    def _decide(self, event: ShutdownEvent) -> None:
        # first event after cancellation wins
        if self.state is not ShutdownState.CANCELLING or self._decided.is_set():
            return
        self.decided_by = event
        self._decided.set()

    async def _listen(self) -> None:
        await self._signalled.wait()
        if self.state is ShutdownState.TERMINATED:
            return

        self.state = ShutdownState.CANCELLING
        print(
            f"\nGot signal [{_signal_name(self.first_signal)}] to exit.",
            file=sys.stderr,
        )
        logger.info(
            "Cancelling run; waiting up to %.1fs for workloads to stop",
            self.grace_seconds,
        )
        self._cancel()

        if self._done:
            self._decide(ShutdownEvent.COMPLETED)
        elif self.signal_count > 1:
            self._decide(ShutdownEvent.SECOND_SIGNAL)
        else:
            loop = asyncio.get_running_loop()
            self._grace_timer = loop.call_later(
                self.grace_seconds, self._decide, ShutdownEvent.GRACE_EXPIRED
            )

        try:
            await self._decided.wait()
        finally:
            if self._grace_timer is not None:
                self._grace_timer.cancel()
                self._grace_timer = None

        if self.decided_by is ShutdownEvent.COMPLETED:
            self.state = ShutdownState.TERMINATED
            logger.info("Run stopped within the grace period")
            return

        self.state = ShutdownState.FORCED_EXIT
        if self.decided_by is ShutdownEvent.GRACE_EXPIRED:
            print(
                f"\nWait {self.grace_seconds:g}s for closed, force exit",
                file=sys.stderr,
            )
        logger.error("Forcing exit (%s)", self.decided_by.value)
        sys.stdout.flush()
        sys.stderr.flush()
        self._exit_func(FORCED_EXIT_STATUS)
