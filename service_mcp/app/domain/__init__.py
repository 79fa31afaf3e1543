"""
Domain utilities for the MCP service.

Includes API key authentication and security event recording used by the
gateway and by route handlers.
"""

from .auth_middleware import ApiKeyAuthenticator
from .security_events import SecurityEvent, SecurityEventKind, SecurityEventLogger

__all__ = [
    "ApiKeyAuthenticator",
    "SecurityEvent",
    "SecurityEventKind",
    "SecurityEventLogger",
]
