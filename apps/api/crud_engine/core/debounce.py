from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

T = TypeVar("T")

DebouncedCallback = Callable[[T], Awaitable[None] | None]


class Debouncer(Generic[T]):
    """Timer-gated stage that forwards only the last value seen within the window.

    Every ``trigger`` restarts the timer. When the timer elapses the callback
    runs once with the most recent value. ``cancel`` drops the pending value and
    stops a callback that is still running, so nothing fires after teardown.
    """

    def __init__(
        self,
        delay_seconds: float,
        callback: DebouncedCallback[T],
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self.delay_seconds = delay_seconds
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._pending_value: T | None = None
        self._closed = False
        self._logger = logger or logging.getLogger("crud_engine.debounce")

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def closed(self) -> bool:
        return self._closed

    def trigger(self, value: T) -> None:
        if self._closed:
            return
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._pending_value = value
        self._handle = loop.call_later(self.delay_seconds, self._fire)

    def flush(self) -> None:
        if self._handle is None:
            return
        self._handle.cancel()
        self._fire()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending_value = None
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def close(self) -> None:
        self.cancel()
        self._closed = True

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self) -> None:
        self._handle = None
        if self._closed:
            return
        value = self._pending_value
        self._pending_value = None
        try:
            result: Any = self._callback(value)  # type: ignore[arg-type]
        except Exception as exc:
            self._logger.exception("debounce.callback_failed", extra={"error": str(exc)})
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._finish)

    def _finish(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error("debounce.callback_failed", exc_info=exc, extra={"error": str(exc)})
