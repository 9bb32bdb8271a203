"""Unit tests for request-scoped log context and tracing setup."""

import pytest
from loguru import logger

from kundedata.observability.logging import (
    bind_request_context, current_request_context, get_logger, reset_request_context
)
from kundedata.observability.tracing import init_tracing, parse_key_values
from kundedata.settings import Settings


@pytest.fixture
def records():
    captured = []
    sink_id = logger.add(lambda message: captured.append(message.record), level="DEBUG")
    yield captured
    logger.remove(sink_id)


@pytest.mark.unit
class TestRequestContext:

    def test_bind_merges_and_skips_none(self):
        outer = bind_request_context(correlation_id="abc")
        inner = bind_request_context(user_id=7, organization_id=None)
        try:
            assert current_request_context() == {"correlation_id": "abc", "user_id": 7}
        finally:
            reset_request_context(inner)
        assert current_request_context() == {"correlation_id": "abc"}
        reset_request_context(outer)
        assert current_request_context() == {}

    def test_records_carry_context_and_call_fields(self, records):
        token = bind_request_context(correlation_id="abc", organization_id=3)
        try:
            get_logger("kundedata.tests").info("Lead received", submission_id=42)
        finally:
            reset_request_context(token)

        [record] = [r for r in records if r["message"] == "Lead received"]
        assert record["extra"]["correlation_id"] == "abc"
        assert record["extra"]["organization_id"] == 3
        assert record["extra"]["submission_id"] == 42
        assert record["extra"]["logger_name"] == "kundedata.tests"

    def test_call_fields_override_context(self, records):
        token = bind_request_context(organization_id=3)
        try:
            get_logger("kundedata.tests").warning("Cross-tenant lookup", organization_id=9)
        finally:
            reset_request_context(token)

        [record] = [r for r in records if r["message"] == "Cross-tenant lookup"]
        assert record["extra"]["organization_id"] == 9


@pytest.mark.unit
class TestTracingSetup:

    def test_parse_key_values(self):
        assert parse_key_values("api-key=abc, env = prod,broken,") == {"api-key": "abc", "env": "prod"}
        assert parse_key_values(None) == {}

    def test_tracing_disabled_without_endpoint(self):
        assert init_tracing("kundedata", Settings(OTEL_EXPORTER_OTLP_ENDPOINT=None)) is False
