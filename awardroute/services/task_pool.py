"""Bounded-concurrency runner for async tasks."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")


async def run_pool(
    tasks: list[Callable[[], Awaitable[T]]],
    limit: int,
) -> list[T | BaseException]:
    """
    Run zero-argument coroutine factories with at most `limit` in flight.

    Results come back in task order. A task that raises leaves its exception
    in its slot instead of cancelling the others.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def _run(task: Callable[[], Awaitable[T]]) -> T:
        async with semaphore:
            return await task()

    return await asyncio.gather(*(_run(t) for t in tasks), return_exceptions=True)
