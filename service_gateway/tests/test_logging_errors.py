"""
Unit tests for shared logging context and the error envelope.
"""

import json

import pytest

from shared.errors import NotFoundError, RateLimitExceeded, StoreUnavailable, UpstreamFailure
from shared.logging import (
    ServiceContext,
    add_correlation_context,
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    set_client_context,
    set_request_id,
)


@pytest.fixture(autouse=True)
def _clean_context():
    clear_context()
    yield
    clear_context()


class TestLoggingContext:
    """Test cases for correlation context processors."""

    def test_generated_request_id(self):
        request_id = set_request_id()

        assert request_id
        assert get_request_id() == request_id

    def test_incoming_request_id_is_kept(self):
        assert set_request_id("abc-123") == "abc-123"

    def test_correlation_fields_are_added(self):
        set_request_id("req-1")
        set_client_context("203.0.113.5")

        event = add_correlation_context(None, "info", {"event": "x"})

        assert event["request_id"] == "req-1"
        assert event["client_id"] == "203.0.113.5"

    def test_clear_context(self):
        set_request_id("req-1")
        clear_context()

        assert add_correlation_context(None, "info", {"event": "x"}) == {"event": "x"}

    def test_service_from_logger_name(self):
        processor = ServiceContext("gateway")

        assert processor(None, "info", {"logger": "edge.cache"})["service"] == "edge"
        assert processor(None, "info", {"logger": "root"})["service"] == "gateway"

    def test_json_output(self, capsys):
        configure_logging("gateway", "info", "json")
        set_request_id("req-json")

        get_logger("gateway.test").info("Cache hit", key="cache:GET:/x")

        line = capsys.readouterr().out.strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["event"] == "Cache hit"
        assert payload["service"] == "gateway"
        assert payload["request_id"] == "req-json"


class TestErrors:
    """Test cases for gateway exceptions."""

    def test_rate_limit_envelope(self):
        set_request_id("req-429")
        exc = RateLimitExceeded(retry_after=7)

        body = exc.to_response().model_dump()

        assert exc.status_code == 429
        assert body["code"] == "RATE_LIMIT_EXCEEDED"
        assert body["request_id"] == "req-429"
        assert body["details"]["retry_after"] == 7

    def test_store_unavailable_names_operation(self):
        exc = StoreUnavailable("increment", "timeout")

        assert exc.operation == "increment"
        assert exc.message == "increment: timeout"
        assert exc.status_code == 503

    def test_status_codes(self):
        assert NotFoundError().status_code == 404
        assert UpstreamFailure("hianime").status_code == 502
