"""
Origin resolution: signed delivery URLs for flag images.
"""

import time
from typing import TYPE_CHECKING, Callable, Optional
from urllib.parse import quote, urlencode

from shared.errors import ConfigurationError, OriginError
from shared.logging import get_logger
from shared.tracing import traced_span

from service_flag_gateway.app.caching.flag_cache import FlagCache
from service_flag_gateway.app.signing import sign

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from service_flag_gateway.app.adapters.origin_client import OriginClient


class FlagResolver:
    """Builds and signs flag URLs and stores successful results in the cache.

    With an ``origin_client`` the signed URL is checked against the origin
    before it is cached (verify policy); without one the URL is trusted as
    built. Failures propagate as OriginError subclasses and leave the cache
    untouched.
    """

    def __init__(
        self,
        *,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        cache: FlagCache,
        origin_client: Optional["OriginClient"] = None,
        base_url: str = "https://res.cloudinary.com",
        folder: str = "flags",
        image_format: str = "svg",
        signed_url_ttl_seconds: int = 12 * 60 * 60,
        metrics: Optional["MetricsCollector"] = None,
        wall_clock: Callable[[], float] = time.time,
    ):
        missing = [
            name for name, value in (
                ("cloud_name", cloud_name),
                ("api_key", api_key),
                ("api_secret", api_secret),
            ) if not value
        ]
        if missing:
            raise ConfigurationError("Missing origin credentials", details={"missing": missing})

        self.cloud_name = cloud_name
        self.api_key = api_key
        self._api_secret = api_secret
        self.cache = cache
        self.origin_client = origin_client
        self.base_url = base_url.rstrip("/")
        self.folder = folder.strip("/")
        self.image_format = image_format
        self.signed_url_ttl_seconds = signed_url_ttl_seconds
        self.metrics = metrics
        self._wall_clock = wall_clock
        self.logger = get_logger("flag_gateway.resolver")

    @property
    def verifies_origin(self) -> bool:
        return self.origin_client is not None

    def public_id(self, key: str) -> str:
        return f"{self.folder}/{key}" if self.folder else key

    def build_signed_url(self, key: str) -> str:
        """Assemble the delivery URL for ``key`` signed until now + TTL."""
        public_id = self.public_id(key)
        timestamp = str(int(self._wall_clock()) + self.signed_url_ttl_seconds)
        signature = sign({"public_id": public_id, "timestamp": timestamp}, self._api_secret)

        path = f"{quote(self.cloud_name, safe='')}/image/upload/{quote(public_id)}.{self.image_format}"
        query = urlencode({"api_key": self.api_key, "timestamp": timestamp, "signature": signature})
        return f"{self.base_url}/{path}?{query}"

    async def resolve(self, key: str) -> str:
        """Resolve ``key`` to a signed URL and cache it."""
        start = time.perf_counter()
        with traced_span("origin.resolve", country=key, verify=self.verifies_origin):
            try:
                url = self.build_signed_url(key)
                if self.origin_client is not None:
                    await self.origin_client.check_resource(url, key)
            except OriginError as exc:
                self._record(type(exc).__name__, start)
                self.logger.warning("Flag resolution failed", key=key, code=exc.code, error=exc.message)
                raise

        self.cache.put(key, self.cache.new_entry(key, url))
        self._record("success", start)
        if self.metrics:
            self.metrics.set_gauge("flag_cache_entries", len(self.cache))
        self.logger.info("Flag resolved", key=key, public_id=self.public_id(key))
        return url

    def _record(self, result: str, start: float) -> None:
        if not self.metrics:
            return
        self.metrics.increment_counter("origin_resolutions_total", result=result)
        self.metrics.observe_histogram("origin_resolution_duration_seconds", time.perf_counter() - start)
