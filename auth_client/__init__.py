"""
KeyAuth client.

- keystore: Device key generation and persistence behind a signing capability.
- client: The challenge-response exchange and bearer-authenticated requests.
"""

from .client import AuthState, KeyAuthClient
from .keystore import FileKeyStore, KeyPair, Signer

__all__ = ["AuthState", "KeyAuthClient", "FileKeyStore", "KeyPair", "Signer"]
