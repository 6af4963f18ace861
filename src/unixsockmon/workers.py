"""Fixed-size worker pool fed from a shared job queue.

Usage::

    async with WorkerPool(3) as pool:
        result = await pool.submit(lambda: fetch(item))

Each worker pulls the next job from the queue, runs it and publishes the
outcome on the future returned by :meth:`WorkerPool.submit`. A failing job
never takes its worker down.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    Job = Callable[[], Awaitable[Any]]

logger = logging.getLogger(__name__)

_STOP = object()


class WorkerPool:
    """A bounded set of asyncio workers consuming jobs from one queue."""

    def __init__(self, size: int, *, name: str = "worker") -> None:
        if size < 1:
            msg = f"worker pool size must be at least 1, got {size}"
            raise ValueError(msg)
        self._size = size
        self._name = name
        self._queue: asyncio.Queue[Any] = asyncio.Queue()  # quality-allow-unbounded-queue
        self._workers: list[asyncio.Task[None]] = []
        self._closing = False

    async def __aenter__(self) -> WorkerPool:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    def start(self) -> None:
        """Spawn the workers. Must be called from a running event loop."""
        if self._workers:
            return
        self._closing = False
        for idx in range(self._size):
            task = asyncio.create_task(self._work(idx), name=f"{self._name}-{idx}")
            self._workers.append(task)

    def submit(self, job: Job) -> asyncio.Future[Any]:
        """Queue *job*; the first idle worker runs it.

        Raises:
            RuntimeError: If the pool was never started or is closing.
        """
        if not self._workers or self._closing:
            msg = "worker pool is not running"
            raise RuntimeError(msg)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((job, future))
        return future

    async def close(self) -> None:
        """Stop accepting jobs, drain the queue, and wait for every worker."""
        if not self._workers:
            return
        self._closing = True
        for _ in self._workers:
            self._queue.put_nowait(_STOP)
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

    async def _work(self, idx: int) -> None:
        logger.debug("%s %d: ready", self._name, idx)
        while True:
            item = await self._queue.get()
            if item is _STOP:
                logger.debug("%s %d: exiting", self._name, idx)
                return
            job, future = item
            if future.cancelled():
                continue
            try:
                result = await job()
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as exc:
                if not future.cancelled():
                    future.set_exception(exc)
            else:
                if not future.cancelled():
                    future.set_result(result)


__all__ = ["WorkerPool"]
