"""
Shared utilities for the AFKMate Access Layer.

This package aggregates common building blocks consumed by the API service:

- config: Service configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- circuit_breaker: Protection for calls to the distributed counting store
- base_service: FastAPI application skeleton (health, metrics, error handlers)

Any cross-service logic should live here to avoid import cycles across
service packages. Do not import from service_* packages into afkmate_shared/.
"""
