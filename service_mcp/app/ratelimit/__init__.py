"""
Rate limiting package for the MCP service.

Holds the fixed window limiter and the tier definitions that bound how many
requests a client IP may make per window.
"""
