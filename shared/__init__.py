"""
Shared utilities for Harness services.

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI scaffolding with health, metrics and error handlers

Do not import from service_* packages into shared/.
"""
