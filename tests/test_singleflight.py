"""
Tests for per-key call coalescing.
"""

from __future__ import annotations

import asyncio

import pytest

from edgecdn.edge.singleflight import SingleFlight


class TestSingleFlight:
    """Tests for SingleFlight.do."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_result(self) -> None:
        flight: SingleFlight[int] = SingleFlight()
        started = 0
        release = asyncio.Event()

        async def work() -> int:
            nonlocal started
            started += 1
            await release.wait()
            return 42

        waiters = [asyncio.create_task(flight.do("k", work)) for _ in range(4)]
        await asyncio.sleep(0)
        assert len(flight) == 1

        release.set()
        results = await asyncio.gather(*waiters)

        assert results == [42] * 4
        assert started == 1
        assert len(flight) == 0

    @pytest.mark.asyncio
    async def test_distinct_keys_run_separately(self) -> None:
        flight: SingleFlight[str] = SingleFlight()

        async def echo(value: str) -> str:
            await asyncio.sleep(0)
            return value

        a, b = await asyncio.gather(
            flight.do("a", lambda: echo("a")),
            flight.do("b", lambda: echo("b")),
        )

        assert (a, b) == ("a", "b")

    @pytest.mark.asyncio
    async def test_exception_reaches_every_waiter(self) -> None:
        flight: SingleFlight[int] = SingleFlight()

        async def fail() -> int:
            await asyncio.sleep(0)
            raise RuntimeError("origin down")

        results = await asyncio.gather(
            flight.do("k", fail), flight.do("k", fail), return_exceptions=True
        )

        assert all(isinstance(r, RuntimeError) for r in results)
        assert len(flight) == 0

    @pytest.mark.asyncio
    async def test_key_released_after_completion(self) -> None:
        """Test that a later call starts a fresh execution."""
        flight: SingleFlight[int] = SingleFlight()
        calls = 0

        async def count() -> int:
            nonlocal calls
            calls += 1
            return calls

        assert await flight.do("k", count) == 1
        assert await flight.do("k", count) == 2

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_leader(self) -> None:
        flight: SingleFlight[int] = SingleFlight()
        release = asyncio.Event()

        async def work() -> int:
            await release.wait()
            return 7

        first = asyncio.create_task(flight.do("k", work))
        await asyncio.sleep(0)
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        second = asyncio.create_task(flight.do("k", work))
        await asyncio.sleep(0)
        release.set()

        assert await second == 7
