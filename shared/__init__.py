"""
Shared utilities for the print-ops resource access layer.

This package aggregates the cross-cutting building blocks consumed by the
resource access core:

- config: Settings via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus series and per-client counters
- errors: Canonical error types and responses
- retry: Exponential backoff helpers

Do not import from resource_access into shared/.
"""
