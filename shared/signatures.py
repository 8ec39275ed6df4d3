"""
Wire format for ECDSA P-256 signatures.

Signatures travel as base64 of the 64-byte ``r || s`` concatenation
(IEEE P1363), the format browsers' WebCrypto produces. The cryptography
library works with DER, so both directions are converted here.
"""

import base64

from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

COORDINATE_BYTES = 32
SIGNATURE_BYTES = 2 * COORDINATE_BYTES


def to_wire(der_signature: bytes) -> str:
    """Convert a DER signature to its base64 wire form."""
    r, s = decode_dss_signature(der_signature)
    raw = r.to_bytes(COORDINATE_BYTES, "big") + s.to_bytes(COORDINATE_BYTES, "big")
    return base64.b64encode(raw).decode("ascii")


def from_wire(signature: str) -> bytes:
    """Convert a base64 wire signature to DER.

    Raises ValueError for anything that is not base64 of exactly 64 bytes.
    """
    try:
        raw = base64.b64decode(signature, validate=True)
    except ValueError as e:
        raise ValueError("signature is not valid base64") from e

    if len(raw) != SIGNATURE_BYTES:
        raise ValueError(f"signature must be {SIGNATURE_BYTES} bytes, got {len(raw)}")

    r = int.from_bytes(raw[:COORDINATE_BYTES], "big")
    s = int.from_bytes(raw[COORDINATE_BYTES:], "big")
    return encode_dss_signature(r, s)
