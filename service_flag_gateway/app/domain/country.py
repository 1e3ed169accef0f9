"""
Country identifier normalization.
"""

import re
from typing import Optional

from shared.errors import ValidationError
from shared.logging import get_logger

from service_flag_gateway.app.adapters.country_lookup_client import (
    CountryLookupClient,
    CountryLookupUnavailable,
)


# ASCII only: str.upper() folds some non-ASCII letters ("ı") into ASCII ones.
_TWO_LETTERS = re.compile(r"^[A-Za-z]{2}$")
# Letters plus the punctuation real country names use ("Guinea-Bissau", "Côte d'Ivoire").
_COUNTRY_NAME = re.compile(r"^[^\W\d_](?:[^\W\d_]|[ .,'()&-]){2,63}$")

INVALID_COUNTRY_MESSAGE = "Invalid country parameter. Must be a 2-letter country code or a country name."


class CountryNormalizer:
    """Turns the ``country`` query value into a canonical two-letter key.

    ``validate`` is the syntactic check and never does I/O, so it can run
    before rate limiting. ``normalize`` upper-cases two-letter codes and
    resolves names through the lookup service when one is configured.
    Every failure, including an unavailable lookup service, is a
    ValidationError: normalization fails closed.
    """

    def __init__(self, lookup_client: Optional[CountryLookupClient] = None):
        self.lookup_client = lookup_client
        self.logger = get_logger("flag_gateway.country")

    def validate(self, value: Optional[str]) -> str:
        """Return the trimmed value if it could name a country at all."""
        if value is None:
            raise ValidationError('"country" is required')

        candidate = value.strip()
        if not candidate:
            raise ValidationError('"country" cannot be empty')

        if _TWO_LETTERS.match(candidate):
            return candidate

        if not _COUNTRY_NAME.match(candidate):
            raise ValidationError(INVALID_COUNTRY_MESSAGE, details={"country": candidate[:64]})

        if self.lookup_client is None:
            raise ValidationError(
                "Invalid country parameter. Must be a 2-letter country code.",
                details={"country": candidate},
            )
        return candidate

    async def normalize(self, value: Optional[str]) -> str:
        candidate = self.validate(value)
        if _TWO_LETTERS.match(candidate):
            return self._canonical(candidate)

        try:
            code = await self.lookup_client.lookup_alpha2(candidate)
        except CountryLookupUnavailable as exc:
            self.logger.warning("Country lookup unavailable", country=candidate, error=str(exc))
            raise ValidationError(
                "Country name lookup is unavailable; use a 2-letter country code.",
                details={"country": candidate},
            ) from exc

        if code is None:
            raise ValidationError(f"Unknown country: {candidate}", details={"country": candidate})

        return self._canonical(code)

    @staticmethod
    def _canonical(code: str) -> str:
        code = code.strip()
        if not _TWO_LETTERS.match(code):
            raise ValidationError(INVALID_COUNTRY_MESSAGE, details={"country": code})
        return code.upper()
