"""
Unit tests for in-flight operation coalescing.
"""

import asyncio

import pytest

from service_flag_gateway.app.caching import Coalescer


class TestCoalescer:
    """Test cases for Coalescer."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_run(self):
        coalescer = Coalescer()
        calls = 0
        release = asyncio.Event()

        async def operation():
            nonlocal calls
            calls += 1
            await release.wait()
            return "https://cdn/flags/DE.svg"

        waiters = [asyncio.ensure_future(coalescer.run_exclusive("DE", operation)) for _ in range(50)]
        await asyncio.sleep(0)
        assert coalescer.is_pending("DE")

        release.set()
        results = await asyncio.gather(*waiters)

        assert calls == 1
        assert set(results) == {"https://cdn/flags/DE.svg"}
        assert not coalescer.is_pending("DE")

    @pytest.mark.asyncio
    async def test_failure_is_shared_and_registration_removed(self):
        coalescer = Coalescer()
        calls = 0
        release = asyncio.Event()

        async def operation():
            nonlocal calls
            calls += 1
            await release.wait()
            raise RuntimeError("origin down")

        waiters = [asyncio.ensure_future(coalescer.run_exclusive("FR", operation)) for _ in range(5)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert calls == 1
        assert all(isinstance(result, RuntimeError) for result in results)
        assert coalescer.pending_count() == 0

    @pytest.mark.asyncio
    async def test_next_call_after_completion_runs_again(self):
        coalescer = Coalescer()
        calls = 0

        async def operation():
            nonlocal calls
            calls += 1
            return calls

        assert await coalescer.run_exclusive("IT", operation) == 1
        assert await coalescer.run_exclusive("IT", operation) == 2

    @pytest.mark.asyncio
    async def test_different_keys_run_independently(self):
        coalescer = Coalescer()
        started = []

        async def make(key):
            started.append(key)
            await asyncio.sleep(0)
            return key

        results = await asyncio.gather(
            coalescer.run_exclusive("DE", lambda: make("DE")),
            coalescer.run_exclusive("FR", lambda: make("FR")),
        )

        assert results == ["DE", "FR"]
        assert sorted(started) == ["DE", "FR"]

    @pytest.mark.asyncio
    async def test_waiter_timeout_does_not_cancel_operation(self):
        coalescer = Coalescer()
        release = asyncio.Event()

        async def operation():
            await release.wait()
            return "done"

        with pytest.raises(asyncio.TimeoutError):
            await coalescer.run_exclusive("JP", operation, timeout=0.01)

        assert coalescer.is_pending("JP")
        task = coalescer.schedule("JP", operation)
        release.set()

        assert await task == "done"
        assert not task.cancelled()

    @pytest.mark.asyncio
    async def test_schedule_dedupes_and_reports_joins(self):
        joined = []
        coalescer = Coalescer(on_join=joined.append)
        release = asyncio.Event()

        async def operation():
            await release.wait()
            return 1

        first = coalescer.schedule("ES", operation)
        second = coalescer.schedule("ES", operation)
        release.set()
        await first

        assert first is second
        assert joined == ["ES"]

    @pytest.mark.asyncio
    async def test_close_cancels_outstanding_operations(self):
        coalescer = Coalescer()

        async def operation():
            await asyncio.sleep(3600)

        task = coalescer.schedule("BR", operation)
        await asyncio.sleep(0)
        await coalescer.close()

        assert task.cancelled()
        assert coalescer.pending_count() == 0
