"""
Unit tests for security event logging and header helpers.
"""

import dataclasses

import pytest
from starlette.requests import Request

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_mcp.app.domain.security_events import (
    USER_AGENT_MAX_LENGTH,
    SecurityEventKind,
    SecurityEventLogger,
    request_client_ip,
)
from shared.headers import REDACTED, get_header, get_header_values, get_joined_header, redact_headers


def make_request(headers=None, path="/api/agents", state=None):
    scope = {
        "type": "http",
        "method": "POST",
        "scheme": "http",
        "server": ("testserver", 80),
        "root_path": "",
        "path": path,
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": ("10.9.8.7", 40000),
    }
    if state is not None:
        scope["state"] = state
    return Request(scope)


class TestSecurityEventLogger:
    """Test cases for SecurityEventLogger."""

    @pytest.fixture
    def events(self):
        return []

    @pytest.fixture
    def security_logger(self, events):
        return SecurityEventLogger(sinks=[events.append])

    def test_event_fields(self, security_logger, events):
        """Every event carries timestamp, IP, method, path and user agent."""
        request = make_request({"User-Agent": "curl/8.5"}, state={"client_ip": "198.51.100.4"})

        event = security_logger.emit(SecurityEventKind.AUTH_SUCCESS, request, status=200)

        assert events == [event]
        assert event.kind == SecurityEventKind.AUTH_SUCCESS
        assert event.client_ip == "198.51.100.4"
        assert event.method == "POST"
        assert event.path == "/api/agents"
        assert event.user_agent == "curl/8.5"
        assert event.timestamp.endswith("+00:00")
        assert event.details == {"status": 200}

    def test_missing_user_agent(self, security_logger):
        event = security_logger.emit(SecurityEventKind.API_ACCESS, make_request())

        assert event.user_agent == "unknown"

    def test_user_agent_is_truncated(self, security_logger):
        event = security_logger.emit(
            SecurityEventKind.API_ACCESS, make_request({"User-Agent": "x" * 500})
        )

        assert len(event.user_agent) == USER_AGENT_MAX_LENGTH

    def test_events_are_immutable(self, security_logger):
        event = security_logger.emit(SecurityEventKind.AUTH_ATTEMPT, make_request(), has_api_key=False)

        with pytest.raises(dataclasses.FrozenInstanceError):
            event.client_ip = "1.1.1.1"
        with pytest.raises(TypeError):
            event.details["has_api_key"] = True

    def test_to_dict(self, security_logger):
        event = security_logger.emit(SecurityEventKind.RATE_LIMIT_EXCEEDED, make_request(), tier="api")

        data = event.to_dict()

        assert data["kind"] == "RATE_LIMIT_EXCEEDED"
        assert data["details"] == {"tier": "api"}

    def test_detail_keys_cannot_override_core_fields(self, security_logger):
        """A detail named like a core field does not break logging."""
        event = security_logger.emit(SecurityEventKind.API_ERROR, make_request(), path="/other")

        assert event.path == "/api/agents"
        assert event.details["path"] == "/other"

    def test_failing_sink_does_not_propagate(self, events):
        def broken(event):
            raise RuntimeError("audit store down")

        security_logger = SecurityEventLogger(sinks=[broken, events.append])

        security_logger.emit(SecurityEventKind.API_ACCESS, make_request())

        assert len(events) == 1

    def test_add_sink(self, events):
        security_logger = SecurityEventLogger()
        security_logger.add_sink(events.append)

        security_logger.emit(SecurityEventKind.API_ACCESS, make_request())

        assert [event.kind for event in events] == [SecurityEventKind.API_ACCESS]

    def test_client_ip_falls_back_to_peer(self):
        assert request_client_ip(make_request()) == "10.9.8.7"


class TestHeaderHelpers:
    """Test cases for header lookup and redaction."""

    def test_get_header_plain_dict(self):
        headers = {"X-Forwarded-For": "1.2.3.4"}

        assert get_header(headers, "x-forwarded-for") == "1.2.3.4"
        assert get_header(headers, "X-Real-IP") is None

    def test_redact_headers(self):
        headers = {
            "X-API-Key": "secret",
            "Authorization": "Bearer abc",
            "Cookie": "session=1",
            "User-Agent": "pytest",
        }

        redacted = redact_headers(headers)

        assert redacted["X-API-Key"] == REDACTED
        assert redacted["Authorization"] == REDACTED
        assert redacted["Cookie"] == REDACTED
        assert redacted["User-Agent"] == "pytest"
        assert headers["X-API-Key"] == "secret"

    def test_repeated_header_lines(self):
        request = make_request()
        request.scope["headers"] = [
            (b"x-forwarded-for", b"6.6.6.6"),
            (b"x-forwarded-for", b"9.9.9.9, 10.0.0.1"),
        ]

        assert get_header_values(request.headers, "X-Forwarded-For") == ["6.6.6.6", "9.9.9.9, 10.0.0.1"]
        assert get_joined_header(request.headers, "X-Forwarded-For") == "6.6.6.6, 9.9.9.9, 10.0.0.1"
        assert get_joined_header(request.headers, "X-Real-IP") is None

    def test_repeated_header_values_plain_dict(self):
        assert get_header_values({"X-Forwarded-For": "1.2.3.4"}, "x-forwarded-for") == ["1.2.3.4"]
