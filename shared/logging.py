"""
Structured logging for KeyAuth.

Every event is a JSON object carrying the service, the request id and, once
known, the identifier being authenticated. Credential material never
reaches the output: fields named in ``REDACTED_FIELDS`` are masked before
rendering.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
identifier_var: ContextVar[Optional[str]] = ContextVar("identifier", default=None)

REDACTED_FIELDS = frozenset({
    "challenge",
    "nonce",
    "signature",
    "token",
    "secret",
    "passphrase",
    "authorization",
})


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structlog JSON output for a service."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_service_context,
            add_correlation_context,
            redact_credentials,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # Logger names are "<service>.<component>"
    name = event_dict.get("logger", "")
    if "." in name:
        event_dict.setdefault("service", name.split(".", 1)[0])
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id

    identifier = identifier_var.get()
    if identifier:
        event_dict.setdefault("identifier", identifier)
    return event_dict


def redact_credentials(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask nonces, signatures, tokens and secrets passed as log fields."""
    for key in event_dict.keys() & REDACTED_FIELDS:
        event_dict[key] = "[redacted]"
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id to the current context, generating one if needed."""
    request_id = request_id or str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def set_identity_context(identifier: Optional[str] = None):
    """Attach the identifier being authenticated to subsequent log events."""
    if identifier:
        identifier_var.set(identifier)


def clear_context():
    request_id_var.set(None)
    identifier_var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
