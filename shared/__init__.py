"""
Shared utilities for KeyAuth.

This package aggregates common building blocks consumed by the service
and the client:

- config: Service and client configuration via pydantic-settings
- logging: Structured logging with request correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- retry: Retry decorator for idempotent calls
- fingerprint: Public key encoding and identifier derivation
- signatures: ECDSA signature wire format
- base_service: FastAPI service scaffolding

Any cross-package logic should live here to avoid import cycles. Do not
import from service_auth or auth_client into shared/.
"""
