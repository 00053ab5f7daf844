"""Async batch utilities for per-token fan-out."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar


T = TypeVar('T')
R = TypeVar('R')

log = logging.getLogger("traider.batch")


async def batch_gather(
    items: Sequence[T],
    async_fn: Callable[[T], Awaitable[R]],
    max_concurrent: int = 5,
    continue_on_error: bool = True,
) -> list[R | None]:
    """Execute async function on items with concurrency limit.

    Args:
        items: Items to process
        async_fn: Async function to call on each item
        max_concurrent: Max concurrent operations
        continue_on_error: If True, errors return None; if False, propagate

    Returns:
        List of results in item order (None for failed items if continue_on_error=True)
    """
    semaphore = asyncio.Semaphore(max_concurrent)

    async def bounded_call(item: T) -> R | None:
        async with semaphore:
            try:
                return await async_fn(item)
            except Exception as e:
                if not continue_on_error:
                    raise
                log.warning("Batch item failed (%s): %s", type(e).__name__, e)
                return None

    return await asyncio.gather(*[bounded_call(item) for item in items])


def chunked(items: Sequence[Any], size: int) -> list[Sequence[Any]]:
    """Split items into consecutive chunks of at most size."""
    return [items[i:i + size] for i in range(0, len(items), size)]
