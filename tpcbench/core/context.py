"""
Cancellable execution context shared by the dispatcher and workloads.

A ``ProcessContext`` carries no payload, only a cancellation signal and an
optional deadline. Cancellation is monotonic and broadcast: once cancelled,
every task observing the context sees it cancelled, and so does every child
derived from it.
"""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from typing import Optional

logger = logging.getLogger(__name__)

CANCELLED = "context cancelled"
DEADLINE_EXCEEDED = "context deadline exceeded"


class ProcessContext:
    """
    Cooperative cancellation token with deadline semantics.

    Workers poll :attr:`cancelled` between operations or await :meth:`wait`
    / :meth:`sleep`. Nothing here interrupts in-flight work.
    """

    def __init__(
        self,
        *,
        parent: Optional["ProcessContext"] = None,
        timeout: Optional[float] = None,
        name: str = "process",
    ):
        self.name = name
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._parent = parent
        self._children: "weakref.WeakSet[ProcessContext]" = weakref.WeakSet()
        self._deadline: Optional[float] = None
        self._timer: Optional[asyncio.TimerHandle] = None

        if timeout is not None:
            self._deadline = time.monotonic() + max(0.0, timeout)
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(
                max(0.0, timeout), self.cancel, DEADLINE_EXCEEDED
            )

        if parent is not None:
            parent._children.add(self)
            if parent.cancelled:
                self.cancel(parent.reason)

    @property
    def cancelled(self) -> bool:
        if not self._event.is_set() and self._deadline is not None:
            if time.monotonic() >= self._deadline:
                self.cancel(DEADLINE_EXCEEDED)
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        """Why the context was cancelled, or None while it is live."""
        return self._reason

    @property
    def deadline(self) -> Optional[float]:
        """Deadline on the ``time.monotonic()`` clock, if any."""
        return self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline; None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self, reason: str = CANCELLED) -> bool:
        """
        Cancel this context and all of its children.

        Returns:
            True if this call performed the cancellation, False if the
            context was already cancelled
        """
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        logger.debug("Context %s cancelled: %s", self.name, reason)
        for child in list(self._children):
            child.cancel(reason)
        return True

    async def wait(self) -> None:
        """Block until the context is cancelled."""
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep up to ``seconds`` or until cancellation, whichever comes first.

        Returns:
            True if the context was cancelled
        """
        if seconds <= 0:
            return self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        return self.cancelled

    def with_timeout(self, seconds: Optional[float], *, name: Optional[str] = None) -> "ProcessContext":
        """
        Derive a child context that is also cancelled after ``seconds``.

        ``None`` derives a child with no deadline. Cancelling the child never
        cancels this context.
        """
        return ProcessContext(parent=self, timeout=seconds, name=name or f"{self.name}/child")

    def child(self, *, name: Optional[str] = None) -> "ProcessContext":
        return self.with_timeout(None, name=name)

    def __repr__(self) -> str:
        state = f"cancelled ({self._reason})" if self._event.is_set() else "live"
        return f"ProcessContext(name={self.name!r}, {state})"
