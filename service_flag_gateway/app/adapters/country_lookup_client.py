"""
Country lookup client for the Gateway.

Resolves free-form country names to ISO alpha-2 codes through a REST
Countries compatible service (``GET /name/<name>?fullText=true&fields=cca2``).
"""

from typing import Optional
from urllib.parse import quote

import httpx

from shared.logging import get_logger
from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException


class CountryLookupUnavailable(Exception):
    """The lookup service could not answer."""


class CountryLookupClient:
    """Client for the external country name lookup service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 3.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.logger = get_logger("flag_gateway.country_lookup")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=3,
            recovery_timeout=30.0,
            expected_exception=CountryLookupUnavailable,
            name="country_lookup",
        )

    async def lookup_alpha2(self, name: str) -> Optional[str]:
        """Return the alpha-2 code for ``name``, or None when it is unknown."""
        try:
            return await self.circuit_breaker.call(self._lookup, name)
        except CircuitBreakerOpenException as exc:
            raise CountryLookupUnavailable(str(exc)) from exc

    async def _lookup(self, name: str) -> Optional[str]:
        url = f"{self.base_url}/name/{quote(name, safe='')}"
        try:
            response = await self._client.get(url, params={"fullText": "true", "fields": "cca2"})
        except httpx.HTTPError as exc:
            self.logger.warning("Country lookup request failed", name=name, error=str(exc))
            raise CountryLookupUnavailable(str(exc)) from exc

        if response.status_code == 404:
            self.logger.info("Country name not found", name=name)
            return None

        if response.status_code != 200:
            self.logger.warning("Country lookup returned error", name=name, status_code=response.status_code)
            raise CountryLookupUnavailable(f"Unexpected status {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise CountryLookupUnavailable("Malformed lookup response") from exc

        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict):
            return None

        code = payload[0].get("cca2")
        return code if isinstance(code, str) else None

    async def close(self) -> None:
        await self._client.aclose()
