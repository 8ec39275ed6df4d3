"""
ECDSA P-256 / SHA-256 signature verification.
"""

from typing import Union

from cryptography.exceptions import InvalidSignature as CryptographyInvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from shared.errors import InvalidKeyError
from shared.fingerprint import load_public_key
from shared.logging import get_logger
from shared.signatures import from_wire

logger = get_logger("auth.signatures")


def verify(
    public_key: Union[str, ec.EllipticCurvePublicKey],
    message: bytes,
    signature: str,
) -> bool:
    """Check that ``signature`` over ``message`` was made by ``public_key``.

    ``public_key`` is either a loaded key or its base64 SPKI text, and
    ``signature`` is the base64 ``r || s`` wire form. Malformed input of
    any kind yields False; this function does not raise.
    """
    try:
        key = load_public_key(public_key) if isinstance(public_key, str) else public_key
        der_signature = from_wire(signature)
    except (InvalidKeyError, ValueError, TypeError) as e:
        logger.debug("Rejected malformed signature input", error=str(e))
        return False

    try:
        key.verify(der_signature, message, ec.ECDSA(hashes.SHA256()))
    except CryptographyInvalidSignature:
        return False
    except (ValueError, TypeError) as e:
        logger.debug("Signature verification error", error=str(e))
        return False
    return True
