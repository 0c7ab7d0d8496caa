# app/tests/test_correlation.py
"""
Tests for correlation ID middleware and request-scoped logging.

These tests verify:
1. Client-provided X-Request-Id is echoed in response
2. Missing or unsafe X-Request-Id is replaced with a UUID4
3. Log records carry the request ID while a request is handled
4. Error responses still carry the header
"""
import logging

import pytest

from app.correlation import (
    RequestIdLogFilter,
    current_request_id,
    validate_request_id,
)


class TestValidateRequestId:
    """Tests for request ID validation."""

    def test_valid_uuid(self):
        """Valid UUID is accepted."""
        request_id = "550e8400-e29b-41d4-a716-446655440000"
        assert validate_request_id(request_id) == request_id

    def test_empty_and_none_rejected(self):
        assert validate_request_id("") is None
        assert validate_request_id(None) is None

    def test_too_long_rejected(self):
        """IDs longer than 64 chars are rejected."""
        assert validate_request_id("a" * 65) is None
        assert validate_request_id("a" * 64) == "a" * 64

    def test_special_chars_rejected(self):
        """Special characters are rejected."""
        assert validate_request_id("abc@123") is None
        assert validate_request_id("abc 123") is None
        assert validate_request_id("abc\n123") is None


class TestRequestIdLogFilter:
    """Tests for the logging filter."""

    def test_outside_request_uses_dash(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)

        assert RequestIdLogFilter().filter(record) is True
        assert record.request_id == "-"
        assert current_request_id() is None


class TestCorrelationIdIntegration:
    """Integration tests for correlation ID with the app."""

    def test_client_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-Id": "my-custom-request-id-123"})
        assert response.headers.get("X-Request-Id") == "my-custom-request-id-123"

    def test_missing_request_id_generated(self, client):
        request_id = client.get("/health").headers.get("X-Request-Id")

        assert request_id is not None
        assert len(request_id.split("-")) == 5

    def test_invalid_request_id_replaced(self, client):
        response = client.get("/health", headers={"X-Request-Id": "bad id; drop table"})
        assert response.headers.get("X-Request-Id") != "bad id; drop table"

    def test_error_response_has_request_id(self, client):
        response = client.get("/account/u1", headers={"X-Request-Id": "err-req-1"})

        assert response.status_code == 401
        assert response.headers.get("X-Request-Id") == "err-req-1"

    def test_log_records_carry_request_id(self, client, auth_headers, caplog):
        caplog.handler.addFilter(RequestIdLogFilter())

        with caplog.at_level(logging.INFO, logger="ledger.service"):
            client.get("/account/u1", headers={**auth_headers("u1"), "X-Request-Id": "log-req-7"})

        created = [r for r in caplog.records if "Created account" in r.getMessage()]
        assert created
        assert created[0].request_id == "log-req-7"

    @pytest.mark.parametrize("path", ["/", "/health"])
    def test_security_headers(self, client, path):
        response = client.get(path)

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
