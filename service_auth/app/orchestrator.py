"""
Server side of the challenge-response exchange.

The service is stateless per request; the challenge store carries the
only state between the two calls:

    request_challenge(identifier, public_key) -> nonce
    authenticate(identifier, signature)       -> session token

The challenge is consumed before its signature is checked, so a failed
attempt cannot be retried against the same nonce. A client that gets any
protocol error must start over with a new challenge.
"""

from typing import Optional

from shared.errors import (
    AuthenticationError,
    IdentityMismatch,
    InvalidSignature,
    UserNotFound,
)
from shared.fingerprint import (
    derive_and_compare,
    encode_public_key,
    is_well_formed_identifier,
    load_public_key,
)
from shared.logging import get_logger, set_identity_context
from shared.metrics import MetricsCollector
from .challenges.issuer import ChallengeIssuer
from .registry.store import RegistrationRecord, RegistrationStore
from .signatures.verifier import verify
from .tokens.issuer import SessionTokenIssuer


class AuthOrchestrator:
    """Coordinates registration, challenges, signature checks and tokens."""

    def __init__(
        self,
        registrations: RegistrationStore,
        challenges: ChallengeIssuer,
        tokens: SessionTokenIssuer,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.registrations = registrations
        self.challenges = challenges
        self.tokens = tokens
        self.metrics = metrics
        self.logger = get_logger("auth.orchestrator")

    async def request_challenge(self, identifier: str, public_key: str) -> str:
        """Handle a challenge request and return the nonce to sign.

        Raises InvalidKeyError for an unparseable key and IdentityMismatch
        when the identifier is not the key's fingerprint; in both cases no
        challenge is created.
        """
        key = load_public_key(public_key)
        if not derive_and_compare(identifier, key):
            self.logger.warning("identity_mismatch")
            raise IdentityMismatch()

        set_identity_context(identifier)

        if not await self.registrations.exists(identifier):
            record = RegistrationRecord(identifier=identifier, public_key=encode_public_key(key))
            if await self.registrations.put(record):
                self.logger.info("identifier_registered", identifier=identifier)
                self._count("registrations_total")

        nonce = await self.challenges.issue(identifier)
        self._count("challenges_issued_total")
        return nonce

    async def authenticate(self, identifier: str, signature: str) -> str:
        """Redeem a challenge with its signature and return a session token."""
        set_identity_context(identifier)
        try:
            token = await self._authenticate(identifier, signature)
        except AuthenticationError as e:
            self.logger.warning("authentication_failed", identifier=identifier, reason=e.code)
            self._count("authentication_attempts_total", outcome=e.code.lower())
            raise

        self.logger.info("authentication_succeeded", identifier=identifier)
        self._count("authentication_attempts_total", outcome="success")
        return token

    async def _authenticate(self, identifier: str, signature: str) -> str:
        if not is_well_formed_identifier(identifier):
            raise UserNotFound(details={"identifier": identifier})

        record = await self.registrations.get(identifier)
        if record is None:
            raise UserNotFound(details={"identifier": identifier})

        nonce = await self.challenges.consume(identifier)

        if not verify(record.public_key, nonce.encode("utf-8"), signature):
            raise InvalidSignature(details={"identifier": identifier})

        return self.tokens.issue(identifier)

    def _count(self, metric_name: str, **labels):
        if self.metrics is not None:
            self.metrics.increment_counter(metric_name, **labels)
