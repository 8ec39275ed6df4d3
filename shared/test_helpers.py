"""
Test helper functions and factory methods for KeyAuth.
"""

import base64
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from jose import jwt

from shared.config import ServiceConfig, get_config
from shared.fingerprint import derive, encode_public_key
from shared.signatures import to_wire

TEST_SECRET = "test-secret"


class FakeClock:
    """Manually advanced clock, callable like ``time.time``."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@dataclass
class DeviceIdentity:
    """A freshly generated device key with its derived identifier."""

    private_key: ec.EllipticCurvePrivateKey
    identifier: str
    public_key: str

    def sign(self, message: str) -> str:
        """Sign the UTF-8 bytes of ``message``, returning the wire signature."""
        der = self.private_key.sign(message.encode("utf-8"), ec.ECDSA(hashes.SHA256()))
        return to_wire(der)


def create_device_identity() -> DeviceIdentity:
    """Generate a P-256 key and derive its identifier."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    public_key = private_key.public_key()
    return DeviceIdentity(
        private_key=private_key,
        identifier=derive(public_key),
        public_key=encode_public_key(public_key),
    )


def create_test_config(**overrides: Any) -> ServiceConfig:
    """Service config with in-memory stores and the sweeper off."""
    settings: Dict[str, Any] = {
        "env": "test",
        "log_level": "warning",
        "redis_url": None,
        "jwt_secret": TEST_SECRET,
        "jwt_previous_secrets": [],
        "challenge_sweep_interval_seconds": 0,
    }
    settings.update(overrides)
    return get_config("auth", 8010, **settings)


def create_session_token(
    identifier: str,
    secret: str = TEST_SECRET,
    issued_at: Optional[int] = None,
    expires_in: int = 3600,
    **extra_claims: Any,
) -> str:
    """Mint a session token directly, bypassing the exchange."""
    issued_at = int(time.time()) if issued_at is None else issued_at
    claims = {"sub": identifier, "iat": issued_at, "exp": issued_at + expires_in}
    claims.update(extra_claims)
    return jwt.encode(claims, secret, algorithm="HS256")


def flip_byte(signature: str, index: int) -> str:
    """Return ``signature`` with one byte of its decoded form inverted."""
    raw = bytearray(base64.b64decode(signature))
    raw[index] ^= 0xFF
    return base64.b64encode(bytes(raw)).decode("ascii")
