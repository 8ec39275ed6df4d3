"""
Session token validation for the Auth service and its downstream callers.
"""

from typing import Dict, Any, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, Field

from shared.errors import TokenInvalid
from shared.logging import get_logger, set_identity_context
from shared.metrics import MetricsCollector
from ..tokens.issuer import SessionTokenIssuer


class TokenVerificationRequest(BaseModel):
    """Request model for token verification."""
    token: str = Field(min_length=1)


class TokenVerificationResponse(BaseModel):
    """Response model for token verification."""
    valid: bool
    identifier: Optional[str] = None
    claims: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class TokenValidator:
    """Token validation service."""

    def __init__(self, token_issuer: SessionTokenIssuer, metrics: Optional[MetricsCollector] = None):
        self.token_issuer = token_issuer
        self.metrics = metrics
        self.logger = get_logger("auth.validator")
        self.security = HTTPBearer(auto_error=False)

    def verify_token(self, token: str) -> TokenVerificationResponse:
        """Verify a session token without raising."""
        try:
            claims = self.extract_claims(token)
        except TokenInvalid as e:
            return TokenVerificationResponse(valid=False, error=e.message)

        return TokenVerificationResponse(
            valid=True,
            identifier=claims["sub"],
            claims=claims
        )

    def extract_claims(self, token: str) -> Dict[str, Any]:
        """Extract claims from a valid token, raising TokenInvalid otherwise."""
        if token.startswith("Bearer "):
            token = token[7:]

        try:
            claims = self.token_issuer.decode(token)
        except TokenInvalid as e:
            self.logger.warning("Token verification failed", error=e.message)
            self._count("invalid")
            raise

        self._count("valid")
        return claims

    def require_identity(self):
        """FastAPI dependency resolving the bearer token to an identifier."""

        async def dependency(
            credentials: Optional[HTTPAuthorizationCredentials] = Depends(self.security),
        ) -> str:
            if credentials is None or credentials.scheme.lower() != "bearer":
                self._count("missing")
                raise TokenInvalid("Bearer token required")

            identifier = self.extract_claims(credentials.credentials)["sub"]
            set_identity_context(identifier)
            return identifier

        return dependency

    def _count(self, status: str):
        if self.metrics is not None:
            self.metrics.increment_counter("token_validations_total", status=status)
