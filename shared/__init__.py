"""
Shared utilities for the Tatakai gateway.

This package aggregates common building blocks consumed by the service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorator for transient upstream failures
- circuit_breaker: Fail-fast protection for remote calls
- base_service: FastAPI scaffold (middleware, error handlers, health)

Do not import from service_* packages into shared/.
"""
