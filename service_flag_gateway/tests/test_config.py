"""
Unit tests for service configuration.
"""

import pytest

from shared.config import get_config
from shared.errors import ConfigurationError


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Run without inherited credentials or a stray .env file."""
    monkeypatch.chdir(tmp_path)
    for name in ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestConfig:
    """Test cases for get_config."""

    def test_defaults(self, make_config):
        config = make_config()

        assert config.service_name == "flag_gateway"
        assert config.port == 3000
        assert config.rate_limit_max == 100
        assert config.rate_limit_window_seconds == 900
        assert config.max_cached_items == 500
        assert config.signed_url_ttl_seconds == 43200
        assert config.cache_ttl_seconds + config.cache_grace_seconds <= config.signed_url_ttl_seconds
        assert config.origin_verify is False
        assert config.country_lookup_url is None
        assert config.trust_proxy_headers is False

    def test_missing_credentials(self, clean_env):
        with pytest.raises(ConfigurationError) as exc_info:
            get_config("flag_gateway")

        fields = exc_info.value.details["fields"]
        assert "cloudinary_cloud_name" in fields
        assert "cloudinary_api_secret" in fields

    def test_credentials_from_environment(self, clean_env):
        clean_env.setenv("CLOUDINARY_CLOUD_NAME", "env-cloud")
        clean_env.setenv("CLOUDINARY_API_KEY", "env-key")
        clean_env.setenv("CLOUDINARY_API_SECRET", "env-secret")
        clean_env.setenv("RATE_LIMIT_MAX", "25")

        config = get_config("flag_gateway")

        assert config.cloudinary_cloud_name == "env-cloud"
        assert config.rate_limit_max == 25

    def test_empty_secret_rejected(self, make_config):
        with pytest.raises(ConfigurationError):
            make_config(cloudinary_api_secret="")

    def test_cache_must_not_outlive_signature(self, make_config):
        with pytest.raises(ConfigurationError):
            make_config(signed_url_ttl_seconds=3600, cache_ttl_seconds=3600, cache_grace_seconds=60)

    @pytest.mark.parametrize("overrides", [
        {"rate_limit_key_strategy": "cookie"},
        {"rate_limit_backend": "memcached"},
        {"rate_limit_max": 0},
        {"max_cached_items": 0},
    ])
    def test_invalid_settings(self, make_config, overrides):
        with pytest.raises(ConfigurationError):
            make_config(**overrides)

    def test_config_is_frozen(self, make_config):
        config = make_config()
        with pytest.raises(Exception):
            config.rate_limit_max = 5
