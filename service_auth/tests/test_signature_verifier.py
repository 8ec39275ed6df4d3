"""
Unit tests for signature verification.
"""

import base64

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from service_auth.app.signatures.verifier import verify
from shared.test_helpers import create_device_identity, flip_byte


class TestVerify:
    """Test cases for verify()."""

    @pytest.fixture
    def identity(self):
        return create_device_identity()

    @pytest.fixture
    def nonce(self):
        return base64.b64encode(b"n" * 32).decode("ascii")

    def test_valid_signature(self, identity, nonce):
        """Signature by the matching key verifies."""
        signature = identity.sign(nonce)
        assert verify(identity.public_key, nonce.encode("utf-8"), signature) is True

    def test_accepts_loaded_key(self, identity, nonce):
        signature = identity.sign(nonce)
        assert verify(identity.private_key.public_key(), nonce.encode("utf-8"), signature) is True

    def test_every_flipped_byte_is_rejected(self, identity, nonce):
        """Flipping any single byte of the signature makes it invalid."""
        signature = identity.sign(nonce)
        for index in range(64):
            assert verify(identity.public_key, nonce.encode("utf-8"), flip_byte(signature, index)) is False

    def test_wrong_message(self, identity, nonce):
        signature = identity.sign(nonce)
        assert verify(identity.public_key, b"another message", signature) is False

    def test_wrong_key(self, identity, nonce):
        """Signature by another key does not verify."""
        other = create_device_identity()
        assert verify(other.public_key, nonce.encode("utf-8"), identity.sign(nonce)) is False

    @pytest.mark.parametrize("signature", [
        "",
        "not-base64!!",
        base64.b64encode(b"\x01" * 63).decode("ascii"),
        base64.b64encode(b"\x01" * 65).decode("ascii"),
        base64.b64encode(b"\x00" * 64).decode("ascii"),
    ])
    def test_malformed_signature_returns_false(self, identity, nonce, signature):
        """Malformed signatures never raise."""
        assert verify(identity.public_key, nonce.encode("utf-8"), signature) is False

    def test_der_signature_is_not_accepted(self, identity, nonce):
        """Only the raw r||s wire form is accepted."""
        der = identity.private_key.sign(nonce.encode("utf-8"), ec.ECDSA(hashes.SHA256()))
        assert verify(identity.public_key, nonce.encode("utf-8"), base64.b64encode(der).decode("ascii")) is False

    def test_malformed_key_returns_false(self, identity, nonce):
        assert verify("%%%", nonce.encode("utf-8"), identity.sign(nonce)) is False
