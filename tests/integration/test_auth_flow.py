"""
Integration tests for the challenge-response flow.
"""

import pytest
import httpx
from jose import jwt

from auth_client.client import AuthState, KeyAuthClient
from auth_client.keystore import FileKeyStore
from service_auth.app.main import create_app
from shared.retry import RetryConfig
from shared.test_helpers import (
    TEST_SECRET,
    FakeClock,
    create_device_identity,
    create_test_config,
    flip_byte,
)


class TestAuthFlow:
    """Integration tests for complete auth flow."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def app(self, clock):
        return create_app(create_test_config(), clock=clock)

    @pytest.fixture
    def http_client(self, app):
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

    @pytest.fixture
    def device(self):
        return create_device_identity()

    @pytest.mark.asyncio
    async def test_first_login_registers_identity(self, http_client, device, clock):
        """A fresh identifier is registered and issued a one-hour token."""
        async with http_client as client:
            challenge_response = await client.post(
                "/challenge",
                json={"identifier": device.identifier, "publicKey": device.public_key}
            )
            assert challenge_response.status_code == 200
            nonce = challenge_response.json()["challenge"]

            auth_response = await client.post(
                "/authenticate",
                json={"identifier": device.identifier, "signature": device.sign(nonce)}
            )
            assert auth_response.status_code == 200
            token = auth_response.json()["token"]

            claims = jwt.decode(token, TEST_SECRET, algorithms=["HS256"], options={"verify_exp": False})
            assert claims["sub"] == device.identifier
            assert claims["iat"] == int(clock.now)
            assert claims["exp"] == claims["iat"] + 3600

            me_response = await client.get("/me", headers={"Authorization": f"Bearer {token}"})
            assert me_response.json()["identifier"] == device.identifier

    @pytest.mark.asyncio
    async def test_returning_identity_logs_in_again(self, http_client, device):
        async with http_client as client:
            tokens = []
            for _ in range(2):
                nonce = (await client.post(
                    "/challenge",
                    json={"identifier": device.identifier, "publicKey": device.public_key}
                )).json()["challenge"]
                response = await client.post(
                    "/authenticate",
                    json={"identifier": device.identifier, "signature": device.sign(nonce)}
                )
                assert response.status_code == 200
                tokens.append(response.json()["token"])

            for token in tokens:
                verified = (await client.post("/verify", json={"token": token})).json()
                assert verified["identifier"] == device.identifier

    @pytest.mark.asyncio
    async def test_slow_client_gets_challenge_expired(self, http_client, device, clock):
        """Signing after the two-minute window fails; a fresh challenge works."""
        async with http_client as client:
            nonce = (await client.post(
                "/challenge",
                json={"identifier": device.identifier, "publicKey": device.public_key}
            )).json()["challenge"]

            clock.advance(125)
            response = await client.post(
                "/authenticate",
                json={"identifier": device.identifier, "signature": device.sign(nonce)}
            )
            assert response.status_code == 401
            assert response.json()["code"] == "CHALLENGE_EXPIRED"

            nonce = (await client.post(
                "/challenge",
                json={"identifier": device.identifier, "publicKey": device.public_key}
            )).json()["challenge"]
            response = await client.post(
                "/authenticate",
                json={"identifier": device.identifier, "signature": device.sign(nonce)}
            )
            assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_replayed_signature_is_rejected(self, http_client, device):
        """A captured signature cannot be redeemed a second time."""
        async with http_client as client:
            nonce = (await client.post(
                "/challenge",
                json={"identifier": device.identifier, "publicKey": device.public_key}
            )).json()["challenge"]
            body = {"identifier": device.identifier, "signature": device.sign(nonce)}

            assert (await client.post("/authenticate", json=body)).status_code == 200

            replay = await client.post("/authenticate", json=body)
            assert replay.status_code == 401
            assert replay.json()["code"] == "NO_CHALLENGE"

    @pytest.mark.asyncio
    async def test_tampered_signature_is_rejected(self, http_client, device):
        async with http_client as client:
            nonce = (await client.post(
                "/challenge",
                json={"identifier": device.identifier, "publicKey": device.public_key}
            )).json()["challenge"]

            response = await client.post(
                "/authenticate",
                json={"identifier": device.identifier, "signature": flip_byte(device.sign(nonce), 33)}
            )
            assert response.status_code == 401
            assert response.json()["code"] == "INVALID_SIGNATURE"

    @pytest.mark.asyncio
    async def test_spoofed_identifier_is_refused(self, http_client, device):
        """Claiming someone else's identifier with your own key gets nowhere."""
        attacker = create_device_identity()
        async with http_client as client:
            response = await client.post(
                "/challenge",
                json={"identifier": device.identifier, "publicKey": attacker.public_key}
            )
            assert response.status_code == 400
            assert response.json()["code"] == "IDENTITY_MISMATCH"

            response = await client.post(
                "/authenticate",
                json={"identifier": device.identifier, "signature": attacker.sign("anything")}
            )
            assert response.status_code == 401
            assert response.json()["code"] == "USER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_client_library_against_service(self, http_client, tmp_path):
        """The client's stored key drives the whole exchange."""
        key_store = FileKeyStore(tmp_path)
        client = KeyAuthClient(
            key_store,
            http_client=http_client,
            retry_config=RetryConfig(max_attempts=1, base_delay=0, jitter=False)
        )
        async with http_client:
            await client.authenticate()
            assert client.state == AuthState.AUTHENTICATED

            response = await client.request("GET", "/me")
            assert response.json()["identifier"] == key_store.get_or_create_key_pair().identifier
