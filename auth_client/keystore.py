"""
Device key storage for the client.

One ECDSA P-256 key per profile slot, created on first use and kept on
disk for the life of the profile. Callers never see the private key: they
get a ``Signer`` capability that can sign and do nothing else.
"""

import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from shared.errors import StorageError
from shared.fingerprint import CURVE_NAME, derive, encode_public_key
from shared.logging import get_logger
from shared.signatures import to_wire

logger = get_logger("client.keystore")


class Signer:
    """Opaque signing capability over a private key.

    The key is held privately; there is no accessor, it cannot be pickled
    or copied, and its repr says nothing about it.
    """

    __slots__ = ("__private_key",)

    def __init__(self, private_key: ec.EllipticCurvePrivateKey):
        self.__private_key = private_key

    def sign(self, data: bytes) -> str:
        """Sign ``data`` with ECDSA/SHA-256, returning the base64 wire signature."""
        return to_wire(self.__private_key.sign(data, ec.ECDSA(hashes.SHA256())))

    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self.__private_key.public_key()

    def __repr__(self) -> str:
        return "<Signer ECDSA P-256>"

    def __reduce_ex__(self, protocol):
        raise TypeError("signing keys cannot be serialized")

    def __copy__(self):
        raise TypeError("signing keys cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("signing keys cannot be copied")


@dataclass(frozen=True)
class KeyPair:
    """Public key plus the capability to sign with its private half."""

    public_key: ec.EllipticCurvePublicKey
    signer: Signer

    @property
    def identifier(self) -> str:
        return derive(self.public_key)

    @property
    def encoded_public_key(self) -> str:
        return encode_public_key(self.public_key)


class FileKeyStore:
    """Keeps the device key as a PKCS#8 PEM file readable only by its owner.

    With a passphrase the file is encrypted at rest; without one it relies
    on file permissions alone.
    """

    def __init__(
        self,
        directory: Union[str, Path],
        slot: str = "userKey",
        passphrase: Optional[str] = None,
    ):
        self.directory = Path(directory).expanduser()
        self.slot = slot
        self._passphrase = passphrase.encode("utf-8") if passphrase else None
        self._lock = threading.Lock()
        self._cached: Optional[KeyPair] = None

    @property
    def path(self) -> Path:
        return self.directory / f"{self.slot}.pem"

    def get_or_create_key_pair(self) -> KeyPair:
        """Return the stored key pair, generating and persisting it if absent."""
        with self._lock:
            if self._cached is None:
                self._cached = self._load() or self._create()
            return self._cached

    def exists(self) -> bool:
        return self.path.exists()

    def delete(self) -> bool:
        """Destroy the stored key. The identity it backed is gone for good."""
        with self._lock:
            self._cached = None
            try:
                self.path.unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                raise StorageError("Failed to delete device key", details={"error": str(e)}) from e
            logger.info("Device key deleted", slot=self.slot)
            return True

    def _load(self) -> Optional[KeyPair]:
        try:
            pem = self.path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError("Device key store is not readable", details={"error": str(e)}) from e
        return self._parse(pem)

    def _parse(self, pem: bytes) -> KeyPair:
        try:
            private_key = serialization.load_pem_private_key(pem, password=self._passphrase)
        except (ValueError, TypeError) as e:
            raise StorageError(
                "Stored device key is unreadable",
                details={"path": str(self.path), "error": str(e)}
            ) from e

        if not isinstance(private_key, ec.EllipticCurvePrivateKey) or private_key.curve.name != CURVE_NAME:
            raise StorageError("Stored device key is not an ECDSA P-256 key", details={"path": str(self.path)})

        return KeyPair(public_key=private_key.public_key(), signer=Signer(private_key))

    def _create(self) -> KeyPair:
        private_key = ec.generate_private_key(ec.SECP256R1())
        encryption = (
            serialization.BestAvailableEncryption(self._passphrase)
            if self._passphrase else serialization.NoEncryption()
        )
        pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption
        )

        try:
            self.directory.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd, staging = tempfile.mkstemp(dir=self.directory, prefix=f".{self.slot}.", suffix=".tmp")
        except OSError as e:
            raise StorageError("Device key store is not writable", details={"error": str(e)}) from e

        # The slot only ever appears fully written: stage, then hard-link into place
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(pem)
                handle.flush()
                os.fsync(handle.fileno())
            os.link(staging, self.path)
        except FileExistsError:
            # Another process created the slot first; use its key
            return self._load()
        except OSError as e:
            raise StorageError("Failed to persist device key", details={"error": str(e)}) from e
        finally:
            Path(staging).unlink(missing_ok=True)

        key_pair = KeyPair(public_key=private_key.public_key(), signer=Signer(private_key))
        logger.info("Device key created", slot=self.slot, identifier=key_pair.identifier)
        return key_pair
