"""
API key authentication for the MCP gateway.
"""

import hmac
from dataclasses import dataclass
from typing import Optional

from starlette.requests import Request

from shared.config import Configured, Credential, Unconfigured
from shared.errors import AuthInvalidCredential, AuthMissingCredential
from shared.headers import get_header
from shared.logging import get_logger
from service_mcp.app.domain.security_events import SecurityEventKind, SecurityEventLogger

API_KEY_HEADER = "X-API-Key"


@dataclass(frozen=True)
class AuthResult:
    """Successful authentication outcome."""

    authenticated: bool
    dev_mode: bool = False


def constant_time_equals(presented: bytes, expected: bytes) -> bool:
    """Compare two secrets without leaking where or whether lengths differ.

    On a length mismatch the presented value is still run through a
    constant-time comparison of its own length so both failure paths cost
    about the same.
    """
    if len(presented) != len(expected):
        hmac.compare_digest(presented, bytes(len(presented)))
        return False
    return hmac.compare_digest(presented, expected)


class ApiKeyAuthenticator:
    """Shared-secret authentication for every route under the API prefix."""

    def __init__(self, credential: Credential, events: SecurityEventLogger,
                 header_name: str = API_KEY_HEADER, metrics=None):
        self.credential = credential
        self.events = events
        self.header_name = header_name
        self.metrics = metrics
        self.logger = get_logger("mcp.auth")

    @property
    def dev_mode(self) -> bool:
        return isinstance(self.credential, Unconfigured)

    def extract_api_key(self, request: Request) -> Optional[str]:
        return get_header(request.headers, self.header_name)

    def authenticate(self, request: Request) -> AuthResult:
        """Admit or reject ``request``.

        Raises ``AuthMissingCredential`` (401) or ``AuthInvalidCredential``
        (403). Both carry the same caller-facing message.
        """
        api_key = self.extract_api_key(request)

        self.events.emit(
            SecurityEventKind.AUTH_ATTEMPT,
            request,
            has_api_key=bool(api_key),
            has_expected_key=isinstance(self.credential, Configured),
            api_key_length=len(api_key) if api_key else 0,
        )

        if isinstance(self.credential, Unconfigured):
            self.events.emit(
                SecurityEventKind.AUTH_DEV_MODE,
                request,
                warning="HARNESS_API_KEY not configured",
            )
            self._record("dev_mode")
            return AuthResult(authenticated=False, dev_mode=True)

        if not api_key:
            self.events.emit(
                SecurityEventKind.AUTH_MISSING_KEY,
                request,
                status=401,
                reason="no_api_key_provided",
            )
            self._record("missing")
            raise AuthMissingCredential()

        presented = api_key.encode("utf-8")
        expected = self.credential.secret.encode("utf-8")

        if len(presented) != len(expected):
            constant_time_equals(presented, expected)
            self.events.emit(
                SecurityEventKind.AUTH_INVALID_KEY,
                request,
                status=403,
                reason="key_length_mismatch",
            )
            self._record("invalid")
            raise AuthInvalidCredential()

        if not constant_time_equals(presented, expected):
            self.events.emit(
                SecurityEventKind.AUTH_INVALID_KEY,
                request,
                status=403,
                reason="key_mismatch",
            )
            self._record("invalid")
            raise AuthInvalidCredential()

        self.events.emit(
            SecurityEventKind.AUTH_SUCCESS,
            request,
            status=200,
            authenticated=True,
        )
        self._record("success")
        return AuthResult(authenticated=True)

    def _record(self, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.record_auth_decision(outcome)
