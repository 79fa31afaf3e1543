"""
Client IP resolution behind a fixed number of trusted reverse proxies.

The peer address of the socket is the closest hop. Each trusted proxy appends
the address it received the request from to ``X-Forwarded-For``, so reading
the header right to left walks outward towards the client. Only as many
entries as there are trusted hops are consulted; anything further left was
written by the caller and is ignored.
"""

import ipaddress
from typing import List, Optional

UNKNOWN_CLIENT = "unknown"


def parse_forwarded_for(header_value: Optional[str]) -> List[str]:
    """Split an ``X-Forwarded-For`` value into its non-empty entries."""
    if not header_value:
        return []
    return [part.strip() for part in header_value.split(",") if part.strip()]


def resolve_client_ip(peer: Optional[str], forwarded_for: Optional[str], trusted_hops: int) -> str:
    """Return the address ``trusted_hops`` steps out from the socket peer.

    With ``trusted_hops == 0`` the peer address is returned as is. If the
    chain is shorter than the trusted depth the outermost known address wins.
    """
    chain = [peer or UNKNOWN_CLIENT]
    chain.extend(reversed(parse_forwarded_for(forwarded_for)))
    index = min(max(trusted_hops, 0), len(chain) - 1)
    return chain[index]


def normalize_ip(raw: Optional[str]) -> str:
    """Normalize an address into a stable rate-limit key.

    Handles ``1.2.3.4:5678``, ``[::1]:8080``, IPv4-mapped IPv6 and
    non-canonical IPv6 spellings. Values that are not IP addresses are
    returned trimmed.
    """
    if raw is None:
        return UNKNOWN_CLIENT
    candidate = raw.strip()
    if not candidate:
        return UNKNOWN_CLIENT

    if candidate.startswith("["):
        # [v6]:port or [v6]
        end = candidate.find("]")
        if end != -1:
            candidate = candidate[1:end]
    elif candidate.count(":") == 1:
        # v4:port or host:port
        candidate = candidate.split(":", 1)[0]

    # Zone identifiers (fe80::1%eth0) are local to the host
    candidate = candidate.split("%", 1)[0]

    try:
        address = ipaddress.ip_address(candidate)
    except ValueError:
        return candidate or UNKNOWN_CLIENT

    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return str(address.ipv4_mapped)
    return str(address)
