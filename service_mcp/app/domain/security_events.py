"""
Structured security event logging for gateway decisions.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping

from starlette.requests import Request

from shared.headers import get_header
from shared.logging import get_logger

USER_AGENT_MAX_LENGTH = 200


class SecurityEventKind(str, Enum):
    """Kinds of security relevant decisions the gateway records."""

    RATE_LIMIT_PASSED = "RATE_LIMIT_PASSED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    AUTH_ATTEMPT = "AUTH_ATTEMPT"
    AUTH_DEV_MODE = "AUTH_DEV_MODE"
    AUTH_MISSING_KEY = "AUTH_MISSING_KEY"
    AUTH_INVALID_KEY = "AUTH_INVALID_KEY"
    AUTH_SUCCESS = "AUTH_SUCCESS"
    API_ACCESS = "API_ACCESS"
    API_SUCCESS = "API_SUCCESS"
    API_ERROR = "API_ERROR"
    IP_DEBUG_REQUEST = "IP_DEBUG_REQUEST"


_DEBUG_KINDS = frozenset({SecurityEventKind.RATE_LIMIT_PASSED})
_WARNING_KINDS = frozenset({
    SecurityEventKind.RATE_LIMIT_EXCEEDED,
    SecurityEventKind.PAYLOAD_TOO_LARGE,
    SecurityEventKind.AUTH_DEV_MODE,
    SecurityEventKind.AUTH_MISSING_KEY,
    SecurityEventKind.AUTH_INVALID_KEY,
    SecurityEventKind.IP_DEBUG_REQUEST,
})


@dataclass(frozen=True)
class SecurityEvent:
    """Immutable record of a single security decision."""

    timestamp: str
    kind: SecurityEventKind
    client_ip: str
    method: str
    path: str
    user_agent: str
    details: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "kind": self.kind.value,
            "client_ip": self.client_ip,
            "method": self.method,
            "path": self.path,
            "user_agent": self.user_agent,
            "details": dict(self.details),
        }


SecuritySink = Callable[[SecurityEvent], None]


def request_client_ip(request: Request) -> str:
    """Client IP resolved by the gateway, falling back to the socket peer."""
    client_ip = request.scope.get("state", {}).get("client_ip")
    if client_ip:
        return client_ip
    if request.client:
        return request.client.host
    return "unknown"


class SecurityEventLogger:
    """Builds security events from requests and fans them out to sinks.

    The structured log is always written; extra sinks (audit stores, tests)
    are called after it and may not break request handling.
    """

    def __init__(self, sinks: Iterable[SecuritySink] = ()):
        self.logger = get_logger("mcp.security")
        self._sinks: List[SecuritySink] = list(sinks)

    def add_sink(self, sink: SecuritySink) -> None:
        self._sinks.append(sink)

    def emit(self, kind: SecurityEventKind, request: Request, **details: Any) -> SecurityEvent:
        user_agent = get_header(request.headers, "User-Agent") or "unknown"
        event = SecurityEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            kind=kind,
            client_ip=request_client_ip(request),
            method=request.method,
            path=request.url.path,
            user_agent=user_agent[:USER_AGENT_MAX_LENGTH],
            details=MappingProxyType(dict(details)),
        )
        self._log(event)

        for sink in self._sinks:
            try:
                sink(event)
            except Exception as exc:
                self.logger.error("Security event sink failed", kind=kind.value, error=str(exc))
        return event

    def _log(self, event: SecurityEvent) -> None:
        if event.kind in _DEBUG_KINDS:
            log = self.logger.debug
        elif event.kind in _WARNING_KINDS:
            log = self.logger.warning
        else:
            log = self.logger.info

        fields = dict(event.details)
        fields.update(
            security_event=event.kind.value,
            client_ip=event.client_ip,
            method=event.method,
            path=event.path,
            user_agent=event.user_agent,
        )
        log("Security event", **fields)

