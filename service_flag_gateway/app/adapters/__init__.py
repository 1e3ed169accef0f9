"""
Adapters package for the Gateway Service.

Contains HTTP client wrappers for external dependencies (the image origin
and the country name lookup service). These adapters encapsulate:

- Base URLs and request shapes
- Retry policies and circuit breakers
- Error handling that maps to shared errors

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .country_lookup_client import CountryLookupClient, CountryLookupUnavailable
from .origin_client import OriginClient

__all__ = [
    "CountryLookupClient",
    "CountryLookupUnavailable",
    "OriginClient",
]
