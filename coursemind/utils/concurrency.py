"""Bounded fan-out helper for per-page OCR and vision escalation.

:func:`map_with_concurrency` runs an async mapper over a sequence with at
most ``limit`` calls in flight.  It is a small worker pool: ``limit``
workers share one index cursor and each writes its result into the slot
for the item it took, so output order always matches input order no
matter which call finishes first.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

_T = TypeVar("_T")
_R = TypeVar("_R")


async def map_with_concurrency(
    items: Sequence[_T],
    limit: int,
    mapper: Callable[[_T, int], Awaitable[_R]],
) -> list[_R]:
    """Apply *mapper* to every item with bounded concurrency.

    Parameters
    ----------
    items:
        Inputs to map.  Each is passed to ``mapper(item, index)``.
    limit:
        Maximum number of concurrent mapper calls.  Values below 1 are
        treated as 1.
    mapper:
        Async callable producing the result for one item.

    Returns
    -------
    list[_R]
        Results in input order.

    Raises
    ------
    Exception
        The first exception raised by any mapper call.  The remaining
        workers are cancelled.
    """
    if not items:
        return []

    results: list[_R | None] = [None] * len(items)
    cursor = 0

    async def _worker() -> None:
        nonlocal cursor
        while True:
            # Single-threaded event loop: reading and bumping the cursor
            # between awaits is atomic.
            index = cursor
            if index >= len(items):
                return
            cursor += 1
            results[index] = await mapper(items[index], index)

    worker_count = max(1, min(limit, len(items)))
    tasks = [asyncio.create_task(_worker()) for _ in range(worker_count)]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    return results  # type: ignore[return-value]
