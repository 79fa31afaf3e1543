"""
Gateway package: the request filter chain in front of every route.
"""

from .middleware import Gateway, GatewayMiddleware

__all__ = [
    "Gateway",
    "GatewayMiddleware",
]
