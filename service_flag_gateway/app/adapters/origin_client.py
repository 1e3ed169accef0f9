"""
Image origin client for the Gateway.
"""

from typing import Optional

import httpx

from shared.logging import get_logger
from shared.errors import OriginNotFound, OriginRejected, OriginUnavailable
from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.retry import retry_on_exception, RetryConfig


class OriginClient:
    """Checks that a signed delivery URL resolves at the image origin."""

    def __init__(
        self,
        timeout: float = 5.0,
        retry_config: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.logger = get_logger("flag_gateway.origin_client")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True)

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=30.0,
            expected_exception=OriginUnavailable,
            name="image_origin",
        )

        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=0.5,
            max_delay=5.0,
            exponential_base=2.0,
            jitter=True
        )
        # Only transient failures are retried; not-found and rejections are final.
        self.check_resource = retry_on_exception((OriginUnavailable,), config=self.retry_config)(
            self._check_resource_once
        )

    async def _check_resource_once(self, url: str, key: str) -> None:
        try:
            await self.circuit_breaker.call(self._head, url, key)
        except CircuitBreakerOpenException as exc:
            raise OriginUnavailable(
                "Origin temporarily unavailable",
                details={"key": key, "circuit_breaker": self.circuit_breaker.name},
            ) from exc

    async def _head(self, url: str, key: str) -> None:
        try:
            response = await self._client.head(url)
        except httpx.TimeoutException as exc:
            self.logger.warning("Origin request timed out", key=key)
            raise OriginUnavailable("Origin request timed out", details={"key": key}) from exc
        except httpx.HTTPError as exc:
            self.logger.warning("Origin request failed", key=key, error=str(exc))
            raise OriginUnavailable("Origin unreachable", details={"key": key, "error": str(exc)}) from exc

        status = response.status_code
        if 200 <= status < 300:
            self.logger.debug("Origin resource verified", key=key, status_code=status)
            return

        if status == 404:
            self.logger.info("Origin reports flag missing", key=key)
            raise OriginNotFound(key, details={"status_code": status})

        if status in (401, 403):
            self.logger.error("Origin rejected signed request", key=key, status_code=status)
            raise OriginRejected(details={"key": key, "status_code": status})

        if status == 429 or status >= 500:
            self.logger.warning("Origin returned transient failure", key=key, status_code=status)
            raise OriginUnavailable(
                f"Origin returned status {status}",
                details={"key": key, "status_code": status},
            )

        self.logger.error("Origin returned unexpected status", key=key, status_code=status)
        raise OriginRejected(
            f"Origin returned unexpected status {status}",
            details={"key": key, "status_code": status},
        )

    async def close(self) -> None:
        await self._client.aclose()
