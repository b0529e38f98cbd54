import asyncio
from typing import Any, Awaitable, Callable, Set


class WorkerPool:
    """Bounded pool of asyncio tasks: at most ``concurrency`` run at once,
    the rest wait their turn in submission order."""

    def __init__(self, concurrency: int = 1):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self._semaphore = asyncio.Semaphore(concurrency)
        self._tasks: Set[asyncio.Task] = set()

    def submit(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> asyncio.Task:
        task = asyncio.create_task(self._run(fn, *args))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        async with self._semaphore:
            return await fn(*args)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def join(self) -> None:
        """Wait until every submitted task (including ones submitted while
        waiting) has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
