"""Cooperative cancellation for agent runs.

A single :class:`CancellationSignal` is threaded through every planner and
tool call made within one run::

    signal = CancellationSignal()
    task = asyncio.create_task(executor.arun({"input": "..."}, signal=signal))
    ...
    signal.cancel("user pressed stop")
    await task  # raises RunCancelledError
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import threading
from collections.abc import Awaitable
from typing import TypeVar

from ..exceptions import RunCancelledError

T = TypeVar("T")


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class CancellationSignal:
    """A one-shot flag that aborts in-flight planner and tool calls.

    :meth:`cancel` may also be called from a worker thread, e.g. by a sync
    tool that runs off the event loop.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None
        self._cancelled = False
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Trigger the signal.  Later calls keep the first reason."""
        with self._lock:
            if self._cancelled:
                return
            self._reason = reason
            self._cancelled = True
        loop = self._loop
        if loop is None or loop.is_closed() or _running_loop() is loop:
            self._event.set()
        else:
            loop.call_soon_threadsafe(self._event.set)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RunCancelledError(self._reason)

    async def wait(self) -> None:
        self._loop = asyncio.get_running_loop()
        if self._cancelled:
            return
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless the signal fires first.

        When the signal wins the race the in-flight call is cancelled and
        :class:`RunCancelledError` is raised.
        """
        self._loop = asyncio.get_running_loop()
        if self._cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise RunCancelledError(self._reason)
        call = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.wait())
        try:
            done, _pending = await asyncio.wait({call, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            call.cancel()
            waiter.cancel()
            raise
        if call in done:
            waiter.cancel()
            return call.result()
        call.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await call
        raise RunCancelledError(self._reason)


async def guarded(awaitable: Awaitable[T], signal: CancellationSignal | None) -> T:
    """Await *awaitable*, racing it against *signal* when one is given."""
    if signal is None:
        return await awaitable
    return await signal.guard(awaitable)
