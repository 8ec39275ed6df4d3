"""
Shared error handling for KeyAuth.

Every failure raised by the service or the client derives from
KeyAuthException. Each class carries a stable ``code`` (sent on the wire)
and the HTTP status the service answers with, so the client can map an
error body back to the same exception class.
"""

from typing import Dict, Any, Optional, Type
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class KeyAuthException(Exception):
    """Base exception for KeyAuth."""

    code = "KEYAUTH_ERROR"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_response(self, trace_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(KeyAuthException):
    """Validation-related errors."""

    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class InvalidKeyError(ValidationError):
    """Public key encoding is malformed or not a P-256 key."""

    code = "INVALID_KEY"
    default_message = "Malformed public key"


class IdentityMismatch(ValidationError):
    """Claimed identifier does not match the supplied public key."""

    code = "IDENTITY_MISMATCH"
    default_message = "Identifier does not match public key"


class AuthenticationError(KeyAuthException):
    """Authentication-related errors."""

    code = "AUTHENTICATION_ERROR"
    status_code = 401
    default_message = "Authentication failed"


class UserNotFound(AuthenticationError):
    code = "USER_NOT_FOUND"
    default_message = "User not found"


class NoChallenge(AuthenticationError):
    code = "NO_CHALLENGE"
    default_message = "No challenge found"


class ChallengeExpired(AuthenticationError):
    code = "CHALLENGE_EXPIRED"
    default_message = "Challenge expired"


class InvalidSignature(AuthenticationError):
    code = "INVALID_SIGNATURE"
    default_message = "Invalid signature"


class TokenInvalid(AuthenticationError):
    """Session token failed signature, structure or expiry checks."""

    code = "TOKEN_INVALID"
    default_message = "Invalid session token"


class ServiceError(KeyAuthException):
    """Service-related errors."""

    code = "SERVICE_ERROR"
    status_code = 500
    default_message = "Service error"


class StorageError(ServiceError):
    """Underlying store is unavailable."""

    code = "STORAGE_ERROR"
    status_code = 503
    default_message = "Storage unavailable"


class ExternalServiceError(ServiceError):
    """External service errors."""

    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{service}: {message}", details)


_ERRORS_BY_CODE: Dict[str, Type[KeyAuthException]] = {
    cls.code: cls
    for cls in (
        ValidationError,
        InvalidKeyError,
        IdentityMismatch,
        AuthenticationError,
        UserNotFound,
        NoChallenge,
        ChallengeExpired,
        InvalidSignature,
        TokenInvalid,
        ServiceError,
        StorageError,
    )
}


def error_from_response(status_code: int, body: Dict[str, Any]) -> KeyAuthException:
    """Rebuild the exception described by an error response body."""
    code = body.get("code") if isinstance(body, dict) else None
    message = body.get("message") if isinstance(body, dict) else None
    details = dict(body.get("details") or {}) if isinstance(body, dict) else {}
    details.setdefault("status_code", status_code)

    error_class = _ERRORS_BY_CODE.get(code)
    if error_class is not None:
        return error_class(message, details=details)
    if status_code == 401:
        return AuthenticationError(message, details=details)
    if 400 <= status_code < 500:
        return ValidationError(message, details=details)
    return ExternalServiceError("auth", message or f"HTTP {status_code}", details=details)
