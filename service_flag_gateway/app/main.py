"""
Flag Gateway service.
"""

from typing import Any, Dict, Optional, Union

import httpx
from fastapi import Query, Request, Response
from pydantic import BaseModel

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import RateLimitError
from shared.logging import set_client_context
from shared.retry import RetryConfig

from service_flag_gateway.app.adapters import CountryLookupClient, OriginClient
from service_flag_gateway.app.caching import Coalescer, FlagCache
from service_flag_gateway.app.domain import CountryNormalizer, FlagResolver, FlagService
from service_flag_gateway.app.ratelimit import (
    ClientKeyResolver,
    FixedWindowRateLimiter,
    RedisFixedWindowRateLimiter,
)


SERVICE_NAME = "flag_gateway"
FLAG_ENDPOINT = "/api/getFlag"

RateLimiter = Union[FixedWindowRateLimiter, RedisFixedWindowRateLimiter]


class FlagResponse(BaseModel):
    """Successful flag lookup."""

    success: bool = True
    secureUrl: str


class FlagGatewayService(BaseService):
    """Flag Gateway service implementation.

    All shared state (cache, pending fetches, rate limit counters) belongs to
    the service instance, so every instance is isolated from the others.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[FlagCache] = None,
        origin_transport: Optional[httpx.AsyncBaseTransport] = None,
        lookup_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(SERVICE_NAME, config)

        self.cache = cache or FlagCache(
            max_items=self.config.max_cached_items,
            ttl_seconds=self.config.cache_ttl_seconds,
            grace_seconds=self.config.cache_grace_seconds,
        )
        self.coalescer = Coalescer(
            on_join=lambda key: self.metrics.increment_counter("coalesced_waiters_total")
        )

        self.origin_client: Optional[OriginClient] = None
        if self.config.origin_verify:
            self.origin_client = OriginClient(
                timeout=self.config.origin_timeout_seconds,
                retry_config=RetryConfig(
                    max_attempts=self.config.origin_retry_attempts,
                    base_delay=self.config.origin_retry_base_delay,
                    max_delay=5.0,
                ),
                transport=origin_transport,
            )

        self.resolver = FlagResolver(
            cloud_name=self.config.cloudinary_cloud_name,
            api_key=self.config.cloudinary_api_key,
            api_secret=self.config.cloudinary_api_secret,
            cache=self.cache,
            origin_client=self.origin_client,
            base_url=self.config.origin_base_url,
            folder=self.config.flag_folder,
            image_format=self.config.flag_format,
            signed_url_ttl_seconds=self.config.signed_url_ttl_seconds,
            metrics=self.metrics,
        )
        self.flag_service = FlagService(
            self.cache,
            self.coalescer,
            self.resolver,
            request_timeout=self.config.request_timeout_seconds,
            metrics=self.metrics,
        )

        self.lookup_client: Optional[CountryLookupClient] = None
        if self.config.country_lookup_url:
            self.lookup_client = CountryLookupClient(
                self.config.country_lookup_url,
                transport=lookup_transport,
            )
        self.normalizer = CountryNormalizer(self.lookup_client)

        self.rate_limiter = rate_limiter or self._build_rate_limiter()
        self.client_key_resolver = ClientKeyResolver(
            self.config.rate_limit_key_strategy,
            trust_proxy_headers=self.config.trust_proxy_headers,
        )

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.close()

        self._setup_flag_routes()

        self.logger.info(
            "Flag gateway configured",
            origin_policy="verify" if self.origin_client else "trust",
            rate_limit_backend=self.config.rate_limit_backend,
            rate_limit_max=self.config.rate_limit_max,
            rate_limit_window_seconds=self.config.rate_limit_window_seconds,
            cache_capacity=self.config.max_cached_items,
        )

        # Expose service instance via app state for introspection/testing
        self.app.state.flag_gateway_service = self

    def _build_rate_limiter(self) -> RateLimiter:
        if self.config.rate_limit_backend == "redis":
            return RedisFixedWindowRateLimiter(
                self.config.redis_url,
                max_requests=self.config.rate_limit_max,
                window_seconds=self.config.rate_limit_window_seconds,
            )
        return FixedWindowRateLimiter(
            max_requests=self.config.rate_limit_max,
            window_seconds=self.config.rate_limit_window_seconds,
        )

    def _setup_flag_routes(self):
        """Set up the flag lookup route."""

        @self.app.get(FLAG_ENDPOINT, response_model=FlagResponse)
        async def get_flag(
            request: Request,
            response: Response,
            country: Optional[str] = Query(default=None, max_length=128),
        ):
            """Resolve a country code or name to a signed flag image URL."""
            # Malformed input is rejected for free; name lookups only happen once admitted.
            candidate = self.normalizer.validate(country)

            client_key = self.client_key_resolver(request)
            set_client_context(client_key)
            decision = await self.rate_limiter.admit(client_key)
            if not decision.allowed:
                self.metrics.increment_counter("rate_limit_rejections_total", endpoint=FLAG_ENDPOINT)
                raise RateLimitError(
                    details={
                        "limit": decision.limit,
                        "current_count": decision.current_count,
                        "reset_in_seconds": decision.reset_in_seconds,
                    },
                    headers=decision.headers(),
                )
            response.headers.update(decision.headers())

            key = await self.normalizer.normalize(candidate)
            secure_url = await self.flag_service.get_flag_url(key)
            return FlagResponse(secureUrl=secure_url)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Report rate limiter backend health and the origin policy."""
        dependencies = {"origin": "verify" if self.origin_client else "trust"}
        try:
            dependencies["rate_limiter"] = await self.rate_limiter.ping()
        except Exception as e:
            self.logger.warning("Rate limiter backend unhealthy", error=str(e))
            dependencies["rate_limiter"] = f"error: {e}"
        return dependencies

    def _health_details(self) -> Dict[str, Any]:
        return {
            "cache": self.cache.stats(),
            "pending_fetches": self.coalescer.pending_count(),
        }

    async def close(self) -> None:
        """Release shared state and network clients."""
        await self.coalescer.close()
        await self.rate_limiter.close()
        self.cache.clear()
        if self.origin_client is not None:
            await self.origin_client.close()
        if self.lookup_client is not None:
            await self.lookup_client.close()
        self.logger.info("Flag gateway shut down")


def create_app(config: Optional[ServiceConfig] = None, **kwargs):
    """Create FastAPI application."""
    service = FlagGatewayService(config, **kwargs)
    return service.app


def run():
    """Console entry point."""
    FlagGatewayService().run()


if __name__ == "__main__":
    run()
