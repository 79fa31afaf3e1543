"""
HARNESS agent registry and keyword routing.
"""
