"""
Shared pytest fixtures for the Flag Gateway test suites.
"""

import pytest

from shared.config import get_config


TEST_CREDENTIALS = {
    "cloudinary_cloud_name": "demo-cloud",
    "cloudinary_api_key": "123456789012345",
    "cloudinary_api_secret": "test-secret",
}


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def make_config():
    """Factory for validated service configs with test credentials."""
    def _make(**overrides):
        settings = {**TEST_CREDENTIALS, **overrides}
        return get_config("flag_gateway", **settings)
    return _make


@pytest.fixture
def fake_clock():
    return FakeClock()
