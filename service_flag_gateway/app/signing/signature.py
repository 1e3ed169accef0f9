"""
Origin request signatures.

Parameters are sorted by key and joined as ``key=value`` pairs with ``&``;
the result is signed with HMAC-SHA256 keyed by the API secret.
"""

import hashlib
import hmac
from typing import Mapping

from shared.errors import ConfigurationError


def canonical_string(params: Mapping[str, str]) -> str:
    """Return the canonical ``k1=v1&k2=v2`` form of a parameter map."""
    if not params:
        raise ConfigurationError("Cannot sign an empty parameter set")

    for key, value in params.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise ConfigurationError(
                "Signature parameters must be strings",
                details={"parameter": str(key)},
            )

    return "&".join(f"{key}={params[key]}" for key in sorted(params))


def sign(params: Mapping[str, str], secret: str) -> str:
    """Sign ``params`` with ``secret``; returns a lowercase hex digest."""
    if not secret:
        raise ConfigurationError("Origin API secret is not configured")

    payload = canonical_string(params).encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify(params: Mapping[str, str], secret: str, signature: str) -> bool:
    """Check ``signature`` against ``params`` in constant time."""
    return hmac.compare_digest(sign(params, secret), signature.lower())
