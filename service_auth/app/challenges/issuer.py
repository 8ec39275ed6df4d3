"""
Challenge issuance, consumption and expiry.
"""

import base64
import secrets
import time
from typing import Callable, Optional

from shared.errors import ChallengeExpired, NoChallenge
from shared.logging import get_logger
from .store import Challenge, ChallengeStore

NONCE_BYTES = 32


class ChallengeIssuer:
    """Issues single-use nonces, one live challenge per identifier.

    Issuing a challenge for an identifier that already has one replaces it:
    only the most recently issued nonce can ever be redeemed.
    """

    def __init__(
        self,
        store: ChallengeStore,
        ttl_seconds: float = 120,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.logger = get_logger("auth.challenges")

    async def issue(self, identifier: str) -> str:
        """Create a fresh nonce for ``identifier`` and return it."""
        nonce = base64.b64encode(secrets.token_bytes(NONCE_BYTES)).decode("ascii")
        challenge = Challenge(
            identifier=identifier,
            nonce=nonce,
            issued_at=self.clock(),
            ttl=self.ttl_seconds,
        )

        previous = await self.store.put(challenge)
        if previous is not None and not previous.is_expired(challenge.issued_at):
            self.logger.info("challenge_replaced", identifier=identifier)

        self.logger.debug("challenge_issued", identifier=identifier, ttl=self.ttl_seconds)
        return nonce

    async def consume(self, identifier: str) -> str:
        """Redeem the outstanding challenge for ``identifier``.

        The challenge is removed before anything else is checked, so every
        call uses it up whatever the outcome.
        """
        challenge = await self.store.take(identifier)
        if challenge is None:
            raise NoChallenge(details={"identifier": identifier})

        if challenge.is_expired(self.clock()):
            raise ChallengeExpired(details={"identifier": identifier})

        return challenge.nonce

    async def peek(self, identifier: str) -> Optional[Challenge]:
        """Return the outstanding challenge, or None if absent or expired."""
        challenge = await self.store.get(identifier)
        if challenge is None or challenge.is_expired(self.clock()):
            return None
        return challenge

    async def sweep(self) -> int:
        """Delete expired challenges and return how many were removed.

        Deletion is conditional on the nonce so a challenge re-issued
        between the scan and the delete survives.
        """
        now = self.clock()
        removed = 0
        async for challenge in self.store.scan():
            if challenge.is_expired(now):
                if await self.store.compare_and_delete(challenge.identifier, challenge.nonce):
                    removed += 1
        if removed:
            self.logger.info("challenges_swept", count=removed)
        return removed
