"""
Unit tests for the cache-first flag lookup flow.
"""

import asyncio

import pytest

from shared.errors import OriginNotFound, OriginUnavailable
from shared.metrics import MetricsCollector

from service_flag_gateway.app.caching import CacheOutcome, Coalescer, FlagCache
from service_flag_gateway.app.domain import FlagService


class StubResolver:
    """Resolver double that counts calls and can be held open."""

    def __init__(self, cache):
        self.cache = cache
        self.calls = 0
        self.gate = asyncio.Event()
        self.gate.set()
        self.error = None

    async def resolve(self, key):
        self.calls += 1
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        url = f"https://cdn/flags/{key}.svg?v={self.calls}"
        self.cache.put(key, self.cache.new_entry(key, url))
        return url


class TestFlagService:
    """Test cases for FlagService."""

    @pytest.fixture
    def cache(self, fake_clock):
        return FlagCache(max_items=10, ttl_seconds=100, grace_seconds=50, clock=fake_clock)

    @pytest.fixture
    def resolver(self, cache):
        return StubResolver(cache)

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("flag_gateway_test")

    @pytest.fixture
    def service(self, cache, resolver, metrics):
        return FlagService(cache, Coalescer(), resolver, request_timeout=5.0, metrics=metrics)

    @pytest.mark.asyncio
    async def test_fresh_hit_skips_origin(self, service, resolver, cache):
        cache.put("DE", cache.new_entry("DE", "https://cdn/cached"))

        assert await service.get_flag_url("DE") == "https://cdn/cached"
        assert resolver.calls == 0

    @pytest.mark.asyncio
    async def test_miss_resolves_and_repeat_is_cached(self, service, resolver, metrics):
        first = await service.get_flag_url("DE")
        second = await service.get_flag_url("DE")

        assert first == second
        assert resolver.calls == 1
        assert metrics.get_sample_value("flag_cache_lookups_total", outcome="miss") == 1.0
        assert metrics.get_sample_value("flag_cache_lookups_total", outcome="fresh") == 1.0

    @pytest.mark.asyncio
    async def test_concurrent_misses_resolve_once(self, service, resolver):
        resolver.gate.clear()
        waiters = [asyncio.ensure_future(service.get_flag_url("FR")) for _ in range(20)]
        await asyncio.sleep(0)
        resolver.gate.set()

        results = await asyncio.gather(*waiters)

        assert resolver.calls == 1
        assert len(set(results)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_failure_reaches_every_waiter(self, service, resolver, cache):
        resolver.gate.clear()
        resolver.error = OriginNotFound("XX")
        waiters = [asyncio.ensure_future(service.get_flag_url("XX")) for _ in range(5)]
        await asyncio.sleep(0)
        resolver.gate.set()

        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert resolver.calls == 1
        assert all(isinstance(result, OriginNotFound) for result in results)
        assert cache.get("XX").outcome is CacheOutcome.MISS

    @pytest.mark.asyncio
    async def test_failure_is_retried_on_next_request(self, service, resolver):
        resolver.error = OriginUnavailable()
        with pytest.raises(OriginUnavailable):
            await service.get_flag_url("DE")

        resolver.error = None
        assert await service.get_flag_url("DE")
        assert resolver.calls == 2

    @pytest.mark.asyncio
    async def test_stale_hit_serves_old_url_and_refreshes_once(self, service, resolver, cache, fake_clock, metrics):
        cache.put("DE", cache.new_entry("DE", "https://cdn/old"))
        fake_clock.advance(120)
        resolver.gate.clear()

        first = await service.get_flag_url("DE")
        second = await service.get_flag_url("DE")

        assert first == second == "https://cdn/old"
        assert service.coalescer.is_pending("DE")

        resolver.gate.set()
        while service.coalescer.is_pending("DE"):
            await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert resolver.calls == 1
        lookup = cache.get("DE")
        assert lookup.outcome is CacheOutcome.FRESH
        assert lookup.url != "https://cdn/old"
        assert metrics.get_sample_value("background_refresh_total", result="success") == 1.0

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_stale_entry(self, service, resolver, cache, fake_clock, metrics):
        cache.put("DE", cache.new_entry("DE", "https://cdn/old"))
        fake_clock.advance(120)
        resolver.error = OriginUnavailable()

        assert await service.get_flag_url("DE") == "https://cdn/old"
        while service.coalescer.is_pending("DE"):
            await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert cache.get("DE").url == "https://cdn/old"
        assert metrics.get_sample_value("background_refresh_total", result="failure") == 1.0

    @pytest.mark.asyncio
    async def test_timeout_raises_unavailable_but_resolution_completes(self, cache, resolver):
        service = FlagService(cache, Coalescer(), resolver, request_timeout=0.01)
        resolver.gate.clear()

        with pytest.raises(OriginUnavailable) as exc_info:
            await service.get_flag_url("JP")
        assert exc_info.value.details["timeout_seconds"] == 0.01

        resolver.gate.set()
        while service.coalescer.is_pending("JP"):
            await asyncio.sleep(0)

        assert cache.get("JP").outcome is CacheOutcome.FRESH
