"""
Domain helpers for the Gateway: country normalization, origin resolution and
the cache-first flag lookup flow.
"""

from .country import CountryNormalizer
from .flag_resolver import FlagResolver
from .flag_service import FlagService

__all__ = ["CountryNormalizer", "FlagResolver", "FlagService"]
