"""
Header access helpers shared by the gateway and route handlers.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

SENSITIVE_HEADERS = frozenset({"x-api-key", "authorization", "cookie", "proxy-authorization"})
REDACTED = "[REDACTED]"


def get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup.

    Works for Starlette ``Headers`` as well as plain dicts, whatever casing
    the caller used for the header name.
    """
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def get_header_values(headers: Mapping[str, str], name: str) -> List[str]:
    """Every value of a repeatable header, in the order received.

    Starlette ``Headers`` keep repeated lines apart and ``items()`` would
    only surface them all through ``getlist``.
    """
    if hasattr(headers, "getlist"):
        return list(headers.getlist(name.lower()))
    wanted = name.lower()
    return [value for key, value in headers.items() if key.lower() == wanted]


def get_joined_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Repeated header lines folded into one comma separated value."""
    values = get_header_values(headers, name)
    if not values:
        return None
    return ", ".join(values)


def redact_headers(headers: Mapping[str, str], sensitive: Iterable[str] = SENSITIVE_HEADERS) -> Dict[str, Any]:
    """Copy headers with credential-bearing values masked."""
    masked = {item.lower() for item in sensitive}
    return {
        key: (REDACTED if key.lower() in masked else value)
        for key, value in headers.items()
    }
