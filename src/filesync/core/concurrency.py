"""Bounded fan-out / fan-in for async sync operations."""

import asyncio
from typing import Awaitable, Callable, List, Optional, TypeVar, Union

from ..utils.logging import get_logger

T = TypeVar('T')


class ConcurrentExecutor:
    """Runs batches of async callables with a concurrency cap."""

    def __init__(self, max_concurrent: int = 8, logger=None):
        """Initialize concurrent executor.

        Args:
            max_concurrent: Maximum operations in flight at once
            logger: Optional structured logger
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self.max_concurrent = max_concurrent
        self._semaphore: Optional[asyncio.Semaphore] = None
        self.logger = logger or get_logger(self.__class__.__name__)

    @property
    def semaphore(self) -> asyncio.Semaphore:
        # Created lazily so the semaphore binds to the loop that runs the batch
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)
        return self._semaphore

    async def execute_batch(
        self,
        tasks: List[Callable[[], Awaitable[T]]],
        return_exceptions: bool = False
    ) -> List[Union[T, BaseException]]:
        """Execute a batch of async tasks concurrently and wait for all of them.

        Args:
            tasks: List of async callables
            return_exceptions: Whether to return exceptions instead of raising

        Returns:
            Results in the order of ``tasks``
        """
        if not tasks:
            return []

        async def execute_single(task_func):
            async with self.semaphore:
                return await task_func()

        results = await asyncio.gather(
            *(execute_single(task) for task in tasks),
            return_exceptions=return_exceptions
        )

        self.logger.debug(
            "Batch execution completed",
            total_tasks=len(tasks),
            successful=len([r for r in results if not isinstance(r, BaseException)])
        )

        return list(results)
