"""
Signing package for the Gateway.

Produces the HMAC signatures the image origin uses to verify delivery URLs.
"""

from .signature import canonical_string, sign, verify

__all__ = ["canonical_string", "sign", "verify"]
