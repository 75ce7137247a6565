"""Event-loop timer seam used by the scheduler and playback queue."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Timers(Protocol):
    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> TimerHandle: ...

    def spawn(self, coroutine: Coroutine[Any, Any, None]) -> None: ...


class LoopTimers:
    """`Timers` backed by an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: set[asyncio.Task[None]] = set()

    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> TimerHandle:
        return self._get_loop().call_later(max(0.0, delay_sec), callback)

    def spawn(self, coroutine: Coroutine[Any, Any, None]) -> None:
        task = self._get_loop().create_task(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop
