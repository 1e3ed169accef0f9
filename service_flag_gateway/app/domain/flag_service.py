"""
Flag lookups: cache first, coalesced origin resolution on a miss.
"""

import asyncio
from typing import TYPE_CHECKING, Optional

from shared.errors import OriginUnavailable
from shared.logging import get_logger

from service_flag_gateway.app.caching.coalescer import Coalescer
from service_flag_gateway.app.caching.flag_cache import CacheOutcome, FlagCache
from service_flag_gateway.app.domain.flag_resolver import FlagResolver

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class FlagService:
    """Serves signed flag URLs for canonical country keys.

    - Fresh hit: cached URL.
    - Stale hit: cached URL now, refresh scheduled in the background.
    - Miss: wait for the (possibly shared) origin resolution.
    """

    def __init__(
        self,
        cache: FlagCache,
        coalescer: Coalescer,
        resolver: FlagResolver,
        *,
        request_timeout: Optional[float] = 10.0,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache = cache
        self.coalescer = coalescer
        self.resolver = resolver
        self.request_timeout = request_timeout
        self.metrics = metrics
        self.logger = get_logger("flag_gateway.flag_service")

    async def get_flag_url(self, key: str) -> str:
        lookup = self.cache.get(key)
        if self.metrics:
            self.metrics.increment_counter("flag_cache_lookups_total", outcome=lookup.outcome.value)

        if lookup.outcome is CacheOutcome.FRESH:
            return lookup.url

        if lookup.outcome is CacheOutcome.STALE:
            self.refresh_in_background(key)
            return lookup.url

        try:
            return await self.coalescer.run_exclusive(
                key,
                lambda: self.resolver.resolve(key),
                timeout=self.request_timeout,
            )
        except asyncio.TimeoutError:
            # The shared resolution keeps running and will still fill the cache.
            raise OriginUnavailable(
                "Timed out waiting for the origin",
                details={"key": key, "timeout_seconds": self.request_timeout},
            )

    def refresh_in_background(self, key: str) -> "asyncio.Task[str]":
        """Schedule a refresh for ``key`` unless one is already in flight."""
        already_running = self.coalescer.is_pending(key)
        task = self.coalescer.schedule(key, lambda: self.resolver.resolve(key))
        if not already_running:
            self.logger.info("Scheduled background refresh", key=key)
            task.add_done_callback(lambda finished: self._on_refresh_done(key, finished))
        return task

    def _on_refresh_done(self, key: str, task: "asyncio.Task[str]") -> None:
        if task.cancelled():
            self.logger.info("Background refresh cancelled", key=key)
            self._record_refresh("cancelled")
            return

        exc = task.exception()
        if exc is not None:
            self.logger.warning("Background refresh failed", key=key, error=str(exc), error_type=type(exc).__name__)
            self._record_refresh("failure")
            return

        self.logger.info("Background refresh completed", key=key)
        self._record_refresh("success")

    def _record_refresh(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("background_refresh_total", result=result)
