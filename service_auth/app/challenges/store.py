"""
Challenge storage backends.

A store holds at most one challenge per identifier. ``take`` is the
replay-prevention primitive: it retrieves and deletes in one atomic step,
so two concurrent authenticate requests can never both obtain the same
nonce.
"""

import asyncio
import json
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import AsyncIterator, Dict, Optional

import redis.asyncio as redis

from shared.errors import StorageError
from shared.logging import get_logger


@dataclass(frozen=True)
class Challenge:
    """A single-use nonce issued to one identifier."""

    identifier: str
    nonce: str
    issued_at: float
    ttl: float

    @property
    def expires_at(self) -> float:
        return self.issued_at + self.ttl

    def is_expired(self, now: float) -> bool:
        """The one expiry predicate shared by lazy checks and the sweeper."""
        return now - self.issued_at > self.ttl

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, data: str) -> "Challenge":
        payload = json.loads(data)
        return cls(
            identifier=payload["identifier"],
            nonce=payload["nonce"],
            issued_at=float(payload["issued_at"]),
            ttl=float(payload["ttl"]),
        )


class ChallengeStore(ABC):
    """Storage contract for outstanding challenges."""

    async def start(self):
        """Open connections, if any."""

    async def stop(self):
        """Close connections, if any."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def get(self, identifier: str) -> Optional[Challenge]:
        """Return the stored challenge without removing it."""

    @abstractmethod
    async def put(self, challenge: Challenge) -> Optional[Challenge]:
        """Store a challenge, replacing and returning any previous one."""

    @abstractmethod
    async def delete(self, identifier: str) -> bool:
        """Remove the challenge for an identifier."""

    @abstractmethod
    async def take(self, identifier: str) -> Optional[Challenge]:
        """Atomically retrieve and remove the challenge for an identifier."""

    @abstractmethod
    async def compare_and_delete(self, identifier: str, nonce: str) -> bool:
        """Remove the challenge only if it still carries ``nonce``."""

    @abstractmethod
    def scan(self) -> AsyncIterator[Challenge]:
        """Iterate over a snapshot of stored challenges."""


class InMemoryChallengeStore(ChallengeStore):
    """Process-local store for single-instance deployments and tests."""

    def __init__(self):
        self._challenges: Dict[str, Challenge] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._challenges)

    async def get(self, identifier: str) -> Optional[Challenge]:
        return self._challenges.get(identifier)

    async def put(self, challenge: Challenge) -> Optional[Challenge]:
        async with self._lock:
            previous = self._challenges.get(challenge.identifier)
            self._challenges[challenge.identifier] = challenge
            return previous

    async def delete(self, identifier: str) -> bool:
        async with self._lock:
            return self._challenges.pop(identifier, None) is not None

    async def take(self, identifier: str) -> Optional[Challenge]:
        async with self._lock:
            return self._challenges.pop(identifier, None)

    async def compare_and_delete(self, identifier: str, nonce: str) -> bool:
        async with self._lock:
            current = self._challenges.get(identifier)
            if current is None or current.nonce != nonce:
                return False
            del self._challenges[identifier]
            return True

    async def scan(self) -> AsyncIterator[Challenge]:
        async with self._lock:
            snapshot = list(self._challenges.values())
        for challenge in snapshot:
            yield challenge


_COMPARE_AND_DELETE = """
local current = redis.call('GET', KEYS[1])
if current then
    local ok, decoded = pcall(cjson.decode, current)
    if ok and decoded['nonce'] == ARGV[1] then
        return redis.call('DEL', KEYS[1])
    end
end
return 0
"""


class RedisChallengeStore(ChallengeStore):
    """Redis-backed store shared by all service instances.

    Keys outlive the challenge TTL by ``retention_grace`` seconds so that a
    late authenticate call is reported as expired rather than missing.
    """

    KEY_PREFIX = "challenge:"

    def __init__(self, redis_url: str, retention_grace: int = 60):
        self.redis_url = redis_url
        self.retention_grace = retention_grace
        self.logger = get_logger("auth.challenges.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self):
        """Connect to Redis."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
            await self.redis.ping()
            self.logger.info("Redis challenge store started")
        except redis.RedisError as e:
            self.logger.error("Failed to start Redis challenge store", error=str(e))
            raise StorageError("Challenge store unavailable", details={"error": str(e)}) from e

    async def stop(self):
        if self.redis:
            await self.redis.aclose()
            self.logger.info("Redis challenge store stopped")

    async def health_check(self) -> bool:
        try:
            return bool(await self._client().ping())
        except (StorageError, redis.RedisError):
            return False

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise StorageError("Challenge store not started")
        return self.redis

    def _key(self, identifier: str) -> str:
        return f"{self.KEY_PREFIX}{identifier}"

    def _decode(self, data: Optional[str]) -> Optional[Challenge]:
        if not data:
            return None
        try:
            return Challenge.from_json(data)
        except (ValueError, KeyError, TypeError) as e:
            raise StorageError("Stored challenge is corrupt", details={"error": str(e)}) from e

    async def get(self, identifier: str) -> Optional[Challenge]:
        try:
            data = await self._client().get(self._key(identifier))
        except redis.RedisError as e:
            raise StorageError("Failed to read challenge", details={"error": str(e)}) from e
        return self._decode(data)

    async def put(self, challenge: Challenge) -> Optional[Challenge]:
        expiry = math.ceil(challenge.ttl) + self.retention_grace
        try:
            previous = await self._client().set(
                self._key(challenge.identifier),
                challenge.to_json(),
                ex=expiry,
                get=True
            )
        except redis.RedisError as e:
            raise StorageError("Failed to store challenge", details={"error": str(e)}) from e
        try:
            return self._decode(previous)
        except StorageError:
            # The corrupt entry has just been overwritten
            self.logger.warning("Replaced corrupt challenge entry", identifier=challenge.identifier)
            return None

    async def delete(self, identifier: str) -> bool:
        try:
            return bool(await self._client().delete(self._key(identifier)))
        except redis.RedisError as e:
            raise StorageError("Failed to delete challenge", details={"error": str(e)}) from e

    async def take(self, identifier: str) -> Optional[Challenge]:
        try:
            data = await self._client().getdel(self._key(identifier))
        except redis.RedisError as e:
            raise StorageError("Failed to consume challenge", details={"error": str(e)}) from e
        return self._decode(data)

    async def compare_and_delete(self, identifier: str, nonce: str) -> bool:
        try:
            deleted = await self._client().eval(_COMPARE_AND_DELETE, 1, self._key(identifier), nonce)
        except redis.RedisError as e:
            raise StorageError("Failed to delete challenge", details={"error": str(e)}) from e
        return bool(deleted)

    async def scan(self) -> AsyncIterator[Challenge]:
        client = self._client()
        try:
            async for key in client.scan_iter(match=f"{self.KEY_PREFIX}*"):
                data = await client.get(key)
                try:
                    challenge = self._decode(data)
                except StorageError:
                    # Left for the key TTL to evict
                    self.logger.warning("Skipping corrupt challenge entry", key=key)
                    continue
                if challenge is not None:
                    yield challenge
        except redis.RedisError as e:
            raise StorageError("Failed to scan challenges", details={"error": str(e)}) from e
