"""
photoledger Logging Tests

Tests structured JSON logging:
- JSON formatting with extra fields
- Client address resolution behind proxies
- Request id propagation through the middleware

Example usage:
    pytest tests/test_logging.py -v
"""

import json
import logging
import sys
from unittest.mock import Mock

from core.logging import JSONFormatter, get_client_ip, log_with_context


def record(msg="Test message", **extra):
    rec = logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname="/test/path.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None
    )
    for key, value in extra.items():
        setattr(rec, key, value)
    return rec


class TestJSONFormatter:

    def test_basic_formatting(self):
        log_data = json.loads(JSONFormatter().format(record()))

        assert log_data["level"] == "INFO"
        assert log_data["logger"] == "test.logger"
        assert log_data["msg"] == "Test message"
        assert "time" in log_data

    def test_extra_fields_copied(self):
        log_data = json.loads(JSONFormatter().format(record(request_id="abc123", account_id="acc_1")))

        assert log_data["request_id"] == "abc123"
        assert log_data["account_id"] == "acc_1"
        assert "pathname" not in log_data

    def test_exception_included(self):
        try:
            raise ValueError("bad")
        except ValueError:
            rec = record()
            rec.exc_info = sys.exc_info()

        log_data = json.loads(JSONFormatter().format(rec))

        assert "ValueError: bad" in log_data["exception"]


def fake_request(headers=None, host="10.0.0.1"):
    request = Mock()
    request.headers = headers or {}
    request.client = Mock(host=host) if host else None
    return request


class TestClientIp:

    def test_forwarded_for_first_hop(self):
        request = fake_request({"X-Forwarded-For": "203.0.113.5, 10.0.0.2"})

        assert get_client_ip(request) == "203.0.113.5"

    def test_real_ip(self):
        assert get_client_ip(fake_request({"X-Real-IP": "203.0.113.6"})) == "203.0.113.6"

    def test_socket_address(self):
        assert get_client_ip(fake_request()) == "10.0.0.1"

    def test_unknown(self):
        assert get_client_ip(fake_request(host=None)) == "unknown"


def test_log_with_context_adds_request_fields(caplog):
    logger = logging.getLogger("photoledger.test")
    request = fake_request({"X-Forwarded-For": "198.51.100.9"})
    request.state = Mock(request_id="rid-1")
    request.url = Mock(path="/api/enhance")
    request.method = "POST"

    with caplog.at_level(logging.INFO, logger="photoledger.test"):
        log_with_context(logger, "info", "Submission refused", request=request, decision="LIMIT_REACHED")

    rec = caplog.records[-1]
    assert rec.request_id == "rid-1"
    assert rec.client_ip == "198.51.100.9"
    assert rec.decision == "LIMIT_REACHED"


async def test_request_id_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "fixed-id"})

    assert response.headers["X-Request-ID"] == "fixed-id"
