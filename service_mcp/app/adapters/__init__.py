"""
Adapters for external services used by the MCP service.
"""

from .vision_client import VisionClient

__all__ = ["VisionClient"]
