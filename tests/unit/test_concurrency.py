"""Unit tests for the bounded-concurrency mapper."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from coursemind.utils.concurrency import map_with_concurrency


class TestMapWithConcurrency:
    @pytest.mark.asyncio
    async def test_results_keep_input_order(self) -> None:
        delays = [0.03, 0.0, 0.02, 0.01]

        async def mapper(delay: float, index: int) -> str:
            await asyncio.sleep(delay)
            return f"item-{index}"

        results = await map_with_concurrency(delays, 2, mapper)
        assert results == ["item-0", "item-1", "item-2", "item-3"]

    @pytest.mark.asyncio
    async def test_in_flight_never_exceeds_limit(self) -> None:
        in_flight = 0
        peak = 0

        async def mapper(item: int, index: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.005)
            in_flight -= 1
            return item * 2

        results = await map_with_concurrency(list(range(10)), 3, mapper)
        assert results == [i * 2 for i in range(10)]
        assert peak == 3

    @pytest.mark.asyncio
    async def test_empty_input(self) -> None:
        mapper = AsyncMock()
        assert await map_with_concurrency([], 4, mapper) == []
        mapper.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_limit_below_one_runs_serially(self) -> None:
        in_flight = 0
        peak = 0

        async def mapper(item: str, index: int) -> str:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return item.upper()

        assert await map_with_concurrency(["a", "b", "c"], 0, mapper) == ["A", "B", "C"]
        assert peak == 1

    @pytest.mark.asyncio
    async def test_first_error_propagates(self) -> None:
        started: list[int] = []

        async def mapper(item: int, index: int) -> int:
            started.append(index)
            if index == 1:
                raise RuntimeError("page 2 failed")
            await asyncio.sleep(0.01)
            return item

        with pytest.raises(RuntimeError, match="page 2 failed"):
            await map_with_concurrency(list(range(20)), 2, mapper)
        assert len(started) < 20
