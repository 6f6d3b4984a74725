"""Bounded-parallelism scheduler for coroutine thunks.

``submit`` returns a future that settles with the thunk's outcome. At most
``concurrency`` thunks run at once; the rest wait in FIFO order and start as
soon as a running thunk finishes, whether it returned, raised or was cancelled.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

Thunk = Callable[[], Awaitable[Any]]


class ConcurrencyLimiter:
    """FIFO limiter in the p-limit style, driven by the running event loop."""

    def __init__(self, concurrency: int) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self._concurrency = concurrency
        self._active = 0
        self._queue: deque[tuple[Thunk, asyncio.Future]] = deque()
        self._tasks: set[asyncio.Task] = set()

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def active(self) -> int:
        """Thunks currently running."""
        return self._active

    @property
    def pending(self) -> int:
        """Thunks queued but not started."""
        return len(self._queue)

    def submit(self, thunk: Thunk) -> asyncio.Future:
        """Queue ``thunk`` and return a future for its result."""
        future = asyncio.get_running_loop().create_future()
        self._queue.append((thunk, future))
        self._next()
        return future

    def _next(self) -> None:
        while self._active < self._concurrency and self._queue:
            thunk, future = self._queue.popleft()
            if future.cancelled():
                logger.debug("Dropping cancelled thunk before start, %d still queued", len(self._queue))
                continue
            self._active += 1
            task = asyncio.ensure_future(self._run(thunk, future))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, thunk: Thunk, future: asyncio.Future) -> None:
        try:
            result = await thunk()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            if not future.done():
                future.set_exception(exc)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._active -= 1
            self._next()
