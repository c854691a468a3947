"""
Shared utilities for the AI quota gateway.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry configuration and backoff calculation
- base_service: FastAPI app skeleton with health, metrics and error handling

Do not import from service_gateway into shared/.
"""
