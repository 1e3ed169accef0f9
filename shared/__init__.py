"""
Shared utilities for the Flag Gateway.

Common building blocks used by the service package:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request and trace correlation
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing setup
- errors: Typed gateway errors and the response envelope
- retry: Retry decorator with backoff
- circuit_breaker: Protection for calls to external services
- base_service: FastAPI service skeleton (middleware, health, metrics)

Do not import from service packages into shared/.
"""
