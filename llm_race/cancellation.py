"""Shared cancellation signal for one request."""

import asyncio
import logging
import signal
from typing import Optional, Set

from .errors import CancellationError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Read side of the cancellation signal, handed to runners and adapters."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationError(self.reason or "Request cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    def _set(self, reason: str) -> None:
        self.reason = reason
        self._event.set()


class CancellationBroker:
    """
    Owns the one cancellation signal of a request.

    Firing sets the token and cancels every registered task in the same
    call, so an in-flight transport read is interrupted at its await rather
    than at its next token check. There is no per-task cancellation.
    """

    def __init__(self):
        self.token = CancellationToken()
        self._tasks: Set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def register(self, task: asyncio.Task) -> asyncio.Task:
        if self.token.cancelled:
            task.cancel()
            return task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def fire(self, reason: str = "Request cancelled") -> bool:
        """Fire the signal. Returns False if it had already fired."""
        if self.token.cancelled:
            return False
        logger.debug("Cancellation fired: %s (%d tasks)", reason, len(self._tasks))
        self.token._set(reason)
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        return True

    def install_signal_handler(self) -> None:
        """Fire on SIGINT for the running loop, where the platform allows it."""
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self.fire)
        except (NotImplementedError, RuntimeError):
            logger.debug("SIGINT handler not supported on this loop")
            return
        self._loop = loop

    def remove_signal_handler(self) -> None:
        if self._loop is not None:
            self._loop.remove_signal_handler(signal.SIGINT)
            self._loop = None
