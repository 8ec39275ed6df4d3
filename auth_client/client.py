"""
Client side of the challenge-response exchange.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from shared.config import ClientConfig, get_client_config
from shared.errors import (
    ExternalServiceError,
    KeyAuthException,
    TokenInvalid,
    error_from_response,
)
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception
from .keystore import FileKeyStore, KeyPair

CHALLENGE_RETRY = RetryConfig(max_attempts=3, base_delay=0.5, max_delay=5.0)


class AuthState(str, Enum):
    """Where the client is in the exchange."""
    IDLE = "idle"
    AWAITING_CHALLENGE = "awaiting_challenge"
    SIGNING = "signing"
    AWAITING_AUTH_RESULT = "awaiting_auth_result"
    AUTHENTICATED = "authenticated"


class KeyAuthClient:
    """Authenticates this device against the Auth service.

    Usage::

        async with KeyAuthClient.from_config() as client:
            await client.authenticate()
            response = await client.request("GET", "/me")

    Any failure during ``authenticate`` returns the client to IDLE with no
    token; calling ``authenticate`` again starts over with a new challenge.
    """

    def __init__(
        self,
        key_store: FileKeyStore,
        base_url: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        retry_config: RetryConfig = CHALLENGE_RETRY,
    ):
        self.key_store = key_store
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self.logger = get_logger("client.auth")
        self.state = AuthState.IDLE
        self._token: Optional[str] = None
        self._identifier: Optional[str] = None
        self._request_challenge = retry_on_exception(
            (httpx.TransportError,), config=retry_config
        )(self._post_challenge)

    @classmethod
    def from_config(cls, config: Optional[ClientConfig] = None, **kwargs) -> "KeyAuthClient":
        """Build a client from KEYAUTH_CLIENT_* settings."""
        config = config or get_client_config()
        key_store = FileKeyStore(
            config.key_store_dir,
            slot=config.key_slot,
            passphrase=config.key_passphrase
        )
        return cls(
            key_store,
            base_url=config.auth_service_url,
            timeout=config.request_timeout,
            **kwargs
        )

    async def __aenter__(self) -> "KeyAuthClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        if self._owns_http_client:
            await self.http_client.aclose()

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def identifier(self) -> Optional[str]:
        return self._identifier

    @property
    def is_authenticated(self) -> bool:
        return self.state == AuthState.AUTHENTICATED and self._token is not None

    async def authenticate(self) -> str:
        """Run the full exchange and return the session token."""
        self._token = None
        try:
            key_pair = await asyncio.to_thread(self.key_store.get_or_create_key_pair)
            self._identifier = key_pair.identifier

            self.state = AuthState.AWAITING_CHALLENGE
            nonce = await self._fetch_challenge(key_pair)

            self.state = AuthState.SIGNING
            signature = key_pair.signer.sign(nonce.encode("utf-8"))

            self.state = AuthState.AWAITING_AUTH_RESULT
            token = await self._submit_signature(key_pair.identifier, signature)
        except Exception:
            self.state = AuthState.IDLE
            raise

        self._token = token
        self.state = AuthState.AUTHENTICATED
        self.logger.info("Authenticated", identifier=key_pair.identifier)
        return token

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request carrying the session token as a bearer credential."""
        if not self.is_authenticated:
            raise TokenInvalid("Not authenticated; call authenticate() first")

        headers = httpx.Headers(kwargs.pop("headers", None))
        headers["Authorization"] = f"Bearer {self._token}"
        return await self.http_client.request(method, url, headers=headers, **kwargs)

    def logout(self):
        """Forget the session token. The device key is kept."""
        self._token = None
        self.state = AuthState.IDLE

    def forget_identity(self) -> bool:
        """Log out and destroy the device key, abandoning the identity."""
        self.logout()
        self._identifier = None
        return self.key_store.delete()

    async def _fetch_challenge(self, key_pair: KeyPair) -> str:
        payload = {
            "identifier": key_pair.identifier,
            "publicKey": key_pair.encoded_public_key,
        }
        try:
            body = await self._request_challenge(payload)
        except RetryError as e:
            raise ExternalServiceError(
                "auth", "challenge request failed", details={"error": str(e.last_exception)}
            ) from e
        return self._field(body, "challenge")

    async def _post_challenge(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post("/challenge", payload)

    async def _submit_signature(self, identifier: str, signature: str) -> str:
        # Never retried: the attempt has consumed the challenge either way
        try:
            body = await self._post("/authenticate", {"identifier": identifier, "signature": signature})
        except httpx.TransportError as e:
            raise ExternalServiceError("auth", "authenticate request failed", details={"error": str(e)}) from e
        return self._field(body, "token")

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.http_client.post(path, json=payload)
        if response.status_code == 200:
            try:
                return response.json()
            except ValueError as e:
                raise ExternalServiceError("auth", "malformed response", details={"path": path}) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        error: KeyAuthException = error_from_response(response.status_code, body)
        self.logger.warning("Auth service rejected request", path=path, code=error.code)
        raise error

    @staticmethod
    def _field(body: Any, name: str) -> str:
        value = body.get(name) if isinstance(body, dict) else None
        if not isinstance(value, str) or not value:
            raise ExternalServiceError("auth", "malformed response", details={"missing": name})
        return value
