"""Cooperative cancellation for in-flight turns."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Coroutine, TypeVar

__all__ = ["CancellationToken"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Lets one party abandon awaits that another party is running.

    The engine wraps each API call and tool batch with ``run()``; the app
    calls ``cancel()`` (usually from a Ctrl+C handler installed with
    ``sigint()``) to abort whichever of them is in flight.

    Usage:
        token = CancellationToken()
        with token.sigint():
            outcome = await engine.run_turn(text, cancel_token=token)
        token.reset()
    """

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    def __repr__(self) -> str:
        state = f"cancelled, reason={self.reason!r}" if self._cancelled else "active"
        return f"CancellationToken({state}, running={len(self._tasks)})"

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled by user") -> None:
        """Mark the token cancelled and cancel every task started by run()."""
        if not self._cancelled:
            logger.info("cancellation requested: %s", reason)
        self._cancelled = True
        self.reason = reason
        for task in list(self._tasks):
            if not task.done():
                task.cancel()

    def reset(self) -> None:
        """Clear the cancelled flag so the token can guard the next turn."""
        self._cancelled = False
        self.reason = None

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise asyncio.CancelledError(self.reason)

    async def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Await a coroutine as a task that cancel() can abort.

        Raises:
            asyncio.CancelledError: If the token is, or becomes, cancelled.
        """
        if self._cancelled:
            coro.close()
            raise asyncio.CancelledError(self.reason)

        task: asyncio.Task[T] = asyncio.ensure_future(coro)
        self._tasks.add(task)
        try:
            return await task
        finally:
            self._tasks.discard(task)

    @contextmanager
    def sigint(self) -> Iterator[None]:
        """Route Ctrl+C to cancel() while the block runs.

        Falls back to the default handler on event loops without signal
        support (Windows proactor loop).
        """
        loop = asyncio.get_running_loop()
        installed = True
        try:
            loop.add_signal_handler(signal.SIGINT, self.cancel)
        except (NotImplementedError, RuntimeError, ValueError):
            logger.debug("signal handlers unsupported on this event loop")
            installed = False
        try:
            yield
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)
