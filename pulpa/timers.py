"""Millisecond timers and task tracking on top of the asyncio event loop.

The controller is single-threaded and callback driven: one-shot timers,
repeating timers and the per-frame sampling callback all run on the loop
thread. Every delay in this module is in milliseconds.
"""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Optional, Set

logger = logging.getLogger(__name__)


class RepeatingTimer:
    """Calls a function every `interval_ms` until cancelled."""

    def __init__(self, scheduler: "Scheduler", interval_ms: float, callback: Callable[[], None]):
        self.scheduler = scheduler
        self.interval_ms = interval_ms
        self.callback = callback
        self._handle = None
        self._cancelled = False
        self._arm()

    def _arm(self) -> None:
        self._handle = self.scheduler.call_later(self.interval_ms, self._tick)

    def _tick(self) -> None:
        if self._cancelled:
            return
        # Re-arm first so a callback that cancels us wins
        self._arm()
        self.callback()

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class Scheduler:
    """Timer and task facade over an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None, frame_interval_ms: float = 16.0):
        """Initialize scheduler.

        Args:
            loop: Event loop to schedule on. Defaults to the running loop.
            frame_interval_ms: Cadence of `request_frame` callbacks (~60/s).
        """
        self._loop = loop
        self.frame_interval_ms = frame_interval_ms
        self._tasks: Set[asyncio.Task] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        """Monotonic time in milliseconds."""
        return self.loop.time() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[..., None], *args: Any) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay_ms) / 1000.0, callback, *args)

    def call_every(self, interval_ms: float, callback: Callable[[], None]) -> RepeatingTimer:
        return RepeatingTimer(self, interval_ms, callback)

    def request_frame(self, callback: Callable[[], None]) -> asyncio.TimerHandle:
        """Schedule `callback` for the next display frame."""
        return self.call_later(self.frame_interval_ms, callback)

    def call_soon_threadsafe(self, callback: Callable[..., None], *args: Any) -> None:
        self.loop.call_soon_threadsafe(callback, *args)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        """Run a coroutine as a tracked background task."""
        task = self.loop.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task {task.get_name()} failed: {exc}", exc_info=exc)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every tracked task, including ones spawned meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
