"""
Unit tests for origin request signatures.
"""

import hashlib
import hmac

import pytest

from service_flag_gateway.app.signing import canonical_string, sign, verify
from shared.errors import ConfigurationError


class TestSignature:
    """Test cases for the signature generator."""

    def test_canonical_string_sorts_keys(self):
        params = {"timestamp": "1700000000", "public_id": "flags/DE"}
        assert canonical_string(params) == "public_id=flags/DE&timestamp=1700000000"

    def test_sign_is_hmac_sha256_of_canonical_string(self):
        params = {"public_id": "flags/DE", "timestamp": "1700000000"}
        expected = hmac.new(
            b"secret",
            b"public_id=flags/DE&timestamp=1700000000",
            hashlib.sha256,
        ).hexdigest()

        assert sign(params, "secret") == expected

    def test_sign_is_not_a_bare_digest(self):
        params = {"timestamp": "1700000000"}
        bare = hashlib.sha256(b"timestamp=1700000000secret").hexdigest()
        assert sign(params, "secret") != bare

    def test_signature_independent_of_insertion_order(self):
        forward = {"a": "1", "b": "2", "c": "3"}
        backward = {"c": "3", "b": "2", "a": "1"}
        assert sign(forward, "k") == sign(backward, "k")

    def test_signature_is_lowercase_hex(self):
        signature = sign({"public_id": "flags/FR"}, "k")
        assert len(signature) == 64
        assert signature == signature.lower()
        int(signature, 16)

    def test_different_secret_changes_signature(self):
        params = {"public_id": "flags/FR"}
        assert sign(params, "one") != sign(params, "two")

    def test_empty_secret_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            sign({"public_id": "flags/FR"}, "")

    def test_empty_params_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            sign({}, "secret")

    def test_non_string_values_rejected(self):
        with pytest.raises(ConfigurationError):
            sign({"timestamp": 1700000000}, "secret")

    def test_verify_round_trip_and_tamper(self):
        params = {"public_id": "flags/JP", "timestamp": "42"}
        signature = sign(params, "secret")

        assert verify(params, "secret", signature) is True
        assert verify(params, "secret", signature.upper()) is True
        assert verify({**params, "timestamp": "43"}, "secret", signature) is False
