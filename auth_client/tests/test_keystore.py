"""
Unit tests for the device key store.
"""

import copy
import pickle
import stat

import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives import serialization

from auth_client.keystore import FileKeyStore, Signer
from service_auth.app.signatures.verifier import verify
from shared.errors import StorageError
from shared.fingerprint import FINGERPRINT_LENGTH, derive


class TestFileKeyStore:
    """Test cases for FileKeyStore."""

    @pytest.fixture
    def store(self, tmp_path):
        return FileKeyStore(tmp_path / "keys")

    def test_creates_key_on_first_use(self, store):
        assert store.exists() is False
        key_pair = store.get_or_create_key_pair()

        assert store.exists() is True
        assert len(key_pair.identifier) == FINGERPRINT_LENGTH
        assert key_pair.identifier == derive(key_pair.encoded_public_key)

    def test_key_survives_restart(self, store, tmp_path):
        """A new store over the same directory yields the same identity."""
        first = store.get_or_create_key_pair()
        reloaded = FileKeyStore(tmp_path / "keys").get_or_create_key_pair()
        assert reloaded.identifier == first.identifier

    def test_cached_within_store(self, store):
        assert store.get_or_create_key_pair() is store.get_or_create_key_pair()

    def test_slots_are_independent(self, tmp_path):
        first = FileKeyStore(tmp_path, slot="alice").get_or_create_key_pair()
        second = FileKeyStore(tmp_path, slot="bob").get_or_create_key_pair()
        assert first.identifier != second.identifier

    def test_file_is_owner_only(self, store):
        store.get_or_create_key_pair()
        assert stat.S_IMODE(store.path.stat().st_mode) == 0o600

    def test_passphrase_protects_key(self, tmp_path):
        """With a passphrase the key is encrypted at rest."""
        store = FileKeyStore(tmp_path, passphrase="correct horse")
        identifier = store.get_or_create_key_pair().identifier

        assert b"ENCRYPTED" in store.path.read_bytes()
        assert FileKeyStore(tmp_path, passphrase="correct horse").get_or_create_key_pair().identifier == identifier

    def test_wrong_passphrase(self, tmp_path):
        FileKeyStore(tmp_path, passphrase="correct horse").get_or_create_key_pair()
        with pytest.raises(StorageError):
            FileKeyStore(tmp_path, passphrase="wrong").get_or_create_key_pair()

    def test_corrupt_key_file(self, store):
        store.directory.mkdir(parents=True)
        store.path.write_bytes(b"garbage")
        with pytest.raises(StorageError):
            store.get_or_create_key_pair()

    def test_rejects_other_curves(self, store):
        pem = ec.generate_private_key(ec.SECP384R1()).private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption()
        )
        store.directory.mkdir(parents=True)
        store.path.write_bytes(pem)
        with pytest.raises(StorageError):
            store.get_or_create_key_pair()

    def test_failed_write_leaves_slot_empty(self, store, monkeypatch):
        """A write that fails part-way leaves no unreadable key behind."""
        def failing_fsync(fd):
            raise OSError("disk full")

        monkeypatch.setattr("auth_client.keystore.os.fsync", failing_fsync)
        with pytest.raises(StorageError):
            store.get_or_create_key_pair()

        assert store.exists() is False
        assert list(store.directory.iterdir()) == []

        monkeypatch.undo()
        key_pair = store.get_or_create_key_pair()
        assert FileKeyStore(store.directory).get_or_create_key_pair().identifier == key_pair.identifier

    def test_concurrent_creator_wins(self, store):
        """If another process publishes the slot first, its key is used."""
        existing = FileKeyStore(store.directory).get_or_create_key_pair()

        assert store._create().identifier == existing.identifier

    def test_delete(self, store):
        """Deleting the key abandons the identity."""
        identifier = store.get_or_create_key_pair().identifier
        assert store.delete() is True
        assert store.exists() is False
        assert store.delete() is False
        assert store.get_or_create_key_pair().identifier != identifier


class TestSigner:
    """Test cases for the signing capability."""

    @pytest.fixture
    def key_pair(self, tmp_path):
        return FileKeyStore(tmp_path).get_or_create_key_pair()

    def test_signature_verifies(self, key_pair):
        message = b"bm9uY2U="
        signature = key_pair.signer.sign(message)
        assert verify(key_pair.encoded_public_key, message, signature) is True

    def test_signatures_are_randomized(self, key_pair):
        assert key_pair.signer.sign(b"data") != key_pair.signer.sign(b"data")

    def test_public_key(self, key_pair):
        assert key_pair.signer.public_key().public_numbers() == key_pair.public_key.public_numbers()

    def test_private_key_is_not_exposed(self, key_pair):
        signer = key_pair.signer
        assert repr(signer) == "<Signer ECDSA P-256>"
        assert not hasattr(signer, "private_key")
        assert not hasattr(signer, "__dict__")

    def test_cannot_be_serialized(self, key_pair):
        with pytest.raises(TypeError):
            pickle.dumps(key_pair.signer)

    def test_cannot_be_copied(self, key_pair):
        with pytest.raises(TypeError):
            copy.copy(key_pair.signer)
        with pytest.raises(TypeError):
            copy.deepcopy(key_pair.signer)

    def test_wraps_any_p256_key(self):
        private_key = ec.generate_private_key(ec.SECP256R1())
        signature = Signer(private_key).sign(b"data")
        assert verify(private_key.public_key(), b"data", signature) is True
