"""
Unit tests for logging context helpers.
"""

import pytest
import structlog

from shared.logging import (
    _service_fields,
    add_trace_context,
    clear_context,
    set_client_context,
    set_request_id,
)


class TestLoggingContext:
    """Test cases for request correlation in log events."""

    @pytest.fixture(autouse=True)
    def isolated_context(self):
        clear_context()
        yield
        clear_context()

    def test_request_id_is_kept_when_supplied(self):
        assert set_request_id("abc-123") == "abc-123"
        assert structlog.contextvars.get_contextvars()["request_id"] == "abc-123"

    def test_request_id_is_generated_when_missing(self):
        request_id = set_request_id()

        assert request_id
        assert structlog.contextvars.get_contextvars()["request_id"] == request_id

    def test_client_key_bound_and_cleared(self):
        set_client_context("203.0.113.7")
        assert structlog.contextvars.get_contextvars()["client_key"] == "203.0.113.7"

        clear_context()
        assert structlog.contextvars.get_contextvars() == {}

    def test_service_fields_from_logger_name(self):
        add_service_fields = _service_fields("flag_gateway")

        event = add_service_fields(None, "info", {"event": "Evicted", "logger": "flag_gateway.cache"})

        assert event["service"] == "flag_gateway"
        assert event["component"] == "cache"

    def test_correlation_fields_merged_into_events(self):
        set_request_id("req-1")
        set_client_context("203.0.113.7")

        event = structlog.contextvars.merge_contextvars(None, "info", {"event": "Rate limit exceeded"})

        assert event["request_id"] == "req-1"
        assert event["client_key"] == "203.0.113.7"

    def test_no_trace_ids_without_active_span(self):
        event = add_trace_context(None, "info", {"event": "x"})

        assert "trace_id" not in event
