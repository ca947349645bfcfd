"""Async parallel execution of independent table loads."""

import asyncio
from typing import Callable, Sequence, TypeVar

from dbloada.core.exceptions import EngineError

R = TypeVar("R")


class AsyncParallelExecutor:
    """Runs blocking callables concurrently while keeping result order.

    Each callable runs in the default thread pool; an asyncio.Semaphore caps
    how many run at once.
    """

    def __init__(self, concurrency: int):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency

    async def run_all(self, funcs: Sequence[Callable[[], R]]) -> list[R]:
        """Run every callable and return results in input order.

        Raises:
            EngineError: If any callable raised
        """
        if not funcs:
            return []

        semaphore = asyncio.Semaphore(self.concurrency)
        tasks = [self._run_with_semaphore(semaphore, func) for func in funcs]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        processed = []
        for i, result in enumerate(results):
            if isinstance(result, BaseException):
                raise EngineError(
                    f"Task {i} failed: {result}",
                    context={"task_index": i, "concurrency": self.concurrency},
                ) from result
            processed.append(result)
        return processed

    async def _run_with_semaphore(
        self, semaphore: asyncio.Semaphore, func: Callable[[], R]
    ) -> R:
        async with semaphore:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, func)


def run_async(coro):
    """Run a coroutine to completion from synchronous code."""
    return asyncio.run(coro)
