"""
MCP coordination service package for the HARNESS methodology.

The service fronts every request with a gateway that enforces:
- Client IP resolution behind a fixed number of trusted proxies
- Tiered fixed-window rate limits (general and API)
- Shared-secret API key authentication with constant-time comparison
- A request body size ceiling

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.gateway: ASGI gateway middleware, client IP and header helpers.
- app.ratelimit: Fixed window limiter and tiers.
- app.domain: API key authentication and security event logging.
- app.agents: Agent registry, markdown parsing and task routing.
- app.adapters: HTTP client for the vision model API.
"""
