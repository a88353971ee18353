"""
Bounded fan-out for upstream requests.

A fixed number of workers pull task indexes from a shared counter, so at most
``limit`` tasks are in flight no matter how many yards are configured.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Sequence

logger = logging.getLogger(__name__)


async def run_pool(
    jobs: Sequence[Callable[[], Awaitable[Any]]],
    limit: int,
    fallback: Callable[[], Any] = list,
) -> List[Any]:
    """
    Run zero-argument coroutine factories with limited concurrency.

    Args:
        jobs: Task factories; each is awaited exactly once
        limit: Maximum number of tasks running at the same time
        fallback: Produces the result recorded for a task that raised

    Returns:
        Results in the same order as ``jobs``, once every task has finished
    """
    results: List[Any] = [None] * len(jobs)
    next_index = 0

    async def worker():
        nonlocal next_index
        while next_index < len(jobs):
            idx = next_index
            next_index += 1
            try:
                results[idx] = await jobs[idx]()
            except Exception as e:
                logger.debug(f"Pool task {idx} failed, using fallback result: {e}")
                results[idx] = fallback()

    workers = max(1, min(limit, len(jobs)))
    await asyncio.gather(*(worker() for _ in range(workers)))
    return results
