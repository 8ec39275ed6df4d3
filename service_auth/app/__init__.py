"""
Auth Service package for KeyAuth.

This package exposes the FastAPI application that lets a client prove
possession of its device key and receive a session token in return:

- app.main: Application entrypoint that wires routes, stores and lifecycle.
- app.orchestrator: The two-endpoint challenge-response exchange.
- app.challenges: Single-use nonce issuance, storage and expiry.
- app.registry: Identifier to public key registration records.
- app.signatures: ECDSA P-256 signature verification.
- app.tokens: Session token issuance and verification.
- app.validation: Bearer token validation for downstream callers.

Design notes:
- Keep the package import side-effects minimal; module import must not
  perform network calls. Store connections are opened in the lifespan
  startup hook.
- Use the shared/ utilities for logging, metrics and errors.
- The only state shared between requests lives in the injected stores.
"""
