"""Single-flight request scheduler.

The remote backend falls over under concurrent load and has no admission
control of its own, so every outbound call goes through one `Scheduler`:

    future = scheduler.submit(lambda: gateway("text", request))
    result = await future

Guarantees:
  - at most one task runs at a time
  - tasks start and settle in submission order
  - each task waits `pre_delay` before it starts and the loop waits
    `post_delay` after it settles, before looking at the next task
  - a failing task settles its future with the exception; the loop carries on
  - a task that raises CancelledError cancels its own future; the loop carries on
  - every future settles exactly once (asyncio futures are single-assignment)

There is no per-task timeout: a remote call that never returns blocks the
queue. Callers that need a bound wrap their own call in `asyncio.wait_for`.

`clear()` rejects every queued-but-not-started task with `QueueCleared`.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from companion.models import QueueStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PRE_DELAY = 0.1
DEFAULT_POST_DELAY = 0.2


class QueueCleared(RuntimeError):
    """Raised into the futures of tasks dropped by `Scheduler.clear()`."""


@dataclass
class QueueTask(Generic[T]):
    executor: Callable[[], Awaitable[T]]
    future: asyncio.Future[T]
    order: int


class Scheduler:
    """FIFO queue that executes one async unit of work at a time.

    Args:
        pre_delay:  Seconds to wait before invoking each task.
        post_delay: Seconds to wait after a task settles before the next one.
    """

    def __init__(
        self,
        pre_delay: float = DEFAULT_PRE_DELAY,
        post_delay: float = DEFAULT_POST_DELAY,
    ) -> None:
        self._pre_delay = pre_delay
        self._post_delay = post_delay
        self._queue: deque[QueueTask[Any]] = deque()
        self._busy = False
        self._drainer: asyncio.Task[None] | None = None
        self._submitted = 0

    def submit(self, executor: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        """Queue `executor` and return a future for its result.

        Must be called from inside a running event loop. Submitting from
        within a running task is allowed; the new task goes to the tail.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._submitted += 1
        self._queue.append(QueueTask(executor=executor, future=future, order=self._submitted))
        logger.debug("queue submit order=%d pending=%d", self._submitted, len(self._queue))
        if self._drainer is None or self._drainer.done() or self._drainer.get_loop() is not loop:
            self._drainer = loop.create_task(self._drain())
        return future

    async def run(self, executor: Callable[[], Awaitable[T]]) -> T:
        """Submit and wait for the result."""
        return await self.submit(executor)

    def status(self) -> QueueStatus:
        return QueueStatus(busy=self._busy, pending=len(self._queue))

    def clear(self) -> int:
        """Drop every task that has not started. Returns how many were dropped.

        A task that is already running is left to finish; the drain loop
        keeps owning the queue, so single-flight holds across a clear.
        """
        dropped = 0
        while self._queue:
            task = self._queue.popleft()
            if not task.future.done():
                task.future.set_exception(QueueCleared(f"Task {task.order} dropped by clear()"))
            dropped += 1
        self._busy = False
        if dropped:
            logger.warning("queue cleared, %d pending task(s) rejected", dropped)
        return dropped

    async def _drain(self) -> None:
        while self._queue:
            task = self._queue.popleft()
            if task.future.done():
                # Caller gave up on it before it started.
                continue

            self._busy = True
            try:
                await asyncio.sleep(self._pre_delay)
                if not task.future.done():
                    await self._invoke(task)
            except asyncio.CancelledError:
                task.future.cancel()
                raise
            finally:
                self._busy = False

            await asyncio.sleep(self._post_delay)

    async def _invoke(self, task: QueueTask[Any]) -> None:
        logger.debug("queue start order=%d", task.order)
        try:
            result = await task.executor()
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                # The drain loop itself is being cancelled.
                raise
            logger.warning("queue task order=%d was cancelled", task.order)
            task.future.cancel()
        except Exception as e:
            logger.warning("queue task order=%d failed: %s", task.order, e)
            if not task.future.done():
                task.future.set_exception(e)
        else:
            if not task.future.done():
                task.future.set_result(result)
