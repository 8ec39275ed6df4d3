"""
Public key encoding and fingerprint derivation.

Used by both sides of the exchange: the client derives its identifier
from its own key, the service re-derives it from the key the client
submits and refuses the request when the two disagree.

Canonical encoding is the DER SubjectPublicKeyInfo of an uncompressed
P-256 point, carried as standard base64 text. The identifier is the
first 30 bytes of its SHA-256 digest, base64 encoded, which is always
40 characters without padding.
"""

import base64
import binascii
import hashlib
import hmac
from typing import Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from shared.errors import InvalidKeyError

FINGERPRINT_BYTES = 30
FINGERPRINT_LENGTH = 40
CURVE_NAME = ec.SECP256R1.name

PublicKeyInput = Union[str, bytes, ec.EllipticCurvePublicKey]


def load_public_key(encoded: Union[str, bytes]) -> ec.EllipticCurvePublicKey:
    """Parse a base64 SPKI public key.

    Only P-256 keys in the canonical encoding are accepted, so the bytes
    the caller sent are exactly the bytes the identifier is derived from.
    """
    if isinstance(encoded, str):
        try:
            der = base64.b64decode(encoded.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidKeyError("Public key is not valid base64") from e
    else:
        der = encoded

    if not der:
        raise InvalidKeyError("Public key is empty")

    try:
        key = serialization.load_der_public_key(der)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise InvalidKeyError("Public key is not a DER SubjectPublicKeyInfo structure") from e

    if not isinstance(key, ec.EllipticCurvePublicKey) or key.curve.name != CURVE_NAME:
        raise InvalidKeyError("Public key must be an ECDSA P-256 key")

    # Compressed or otherwise non-canonical encodings would fingerprint differently
    if public_key_bytes(key) != der:
        raise InvalidKeyError("Public key must be an uncompressed P-256 point in canonical DER")

    return key


def public_key_bytes(public_key: ec.EllipticCurvePublicKey) -> bytes:
    """Canonical binary form of a public key."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )


def encode_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    """Canonical text form of a public key, as sent to the service."""
    return base64.b64encode(public_key_bytes(public_key)).decode("ascii")


def _as_key(public_key: PublicKeyInput) -> ec.EllipticCurvePublicKey:
    if isinstance(public_key, (str, bytes)):
        return load_public_key(public_key)
    if isinstance(public_key, ec.EllipticCurvePublicKey) and public_key.curve.name == CURVE_NAME:
        return public_key
    raise InvalidKeyError("Public key must be an ECDSA P-256 key")


def derive(public_key: PublicKeyInput) -> str:
    """Derive the 40-character identifier for a public key."""
    digest = hashlib.sha256(public_key_bytes(_as_key(public_key))).digest()
    return base64.b64encode(digest[:FINGERPRINT_BYTES]).decode("ascii")


def derive_and_compare(identifier: str, public_key: PublicKeyInput) -> bool:
    """Check that ``identifier`` is the fingerprint of ``public_key``.

    Raises InvalidKeyError when the key itself cannot be parsed.
    """
    expected = derive(public_key)
    return hmac.compare_digest(expected.encode("ascii"), identifier.encode("utf-8"))


def is_well_formed_identifier(identifier: str) -> bool:
    """Shape check done before any store lookup."""
    if len(identifier) != FINGERPRINT_LENGTH:
        return False
    try:
        return len(base64.b64decode(identifier, validate=True)) == FINGERPRINT_BYTES
    except (binascii.Error, ValueError):
        return False
