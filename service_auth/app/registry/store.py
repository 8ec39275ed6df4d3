"""
Registration record storage.

Records are written once, the first time an identifier asks for a
challenge, and never modified. ``put`` reports whether it created the
record; writing an identifier that already exists keeps the original.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional

import redis.asyncio as redis
from pydantic import BaseModel, Field

from shared.errors import StorageError
from shared.logging import get_logger


class RegistrationRecord(BaseModel):
    """Binding between an identifier and the public key it was derived from."""

    identifier: str
    public_key: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RegistrationStore(ABC):
    """Storage contract for registration records."""

    async def start(self):
        """Open connections, if any."""

    async def stop(self):
        """Close connections, if any."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def get(self, identifier: str) -> Optional[RegistrationRecord]:
        """Return the record for an identifier, if registered."""

    @abstractmethod
    async def put(self, record: RegistrationRecord) -> bool:
        """Create a record; returns False if the identifier already exists."""

    @abstractmethod
    async def exists(self, identifier: str) -> bool:
        """Check whether an identifier is registered."""


class InMemoryRegistrationStore(RegistrationStore):
    """Process-local registration store."""

    def __init__(self):
        self._records: Dict[str, RegistrationRecord] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def get(self, identifier: str) -> Optional[RegistrationRecord]:
        return self._records.get(identifier)

    async def put(self, record: RegistrationRecord) -> bool:
        async with self._lock:
            if record.identifier in self._records:
                return False
            self._records[record.identifier] = record
            return True

    async def exists(self, identifier: str) -> bool:
        return identifier in self._records


class RedisRegistrationStore(RegistrationStore):
    """Redis-backed registration store."""

    KEY_PREFIX = "registration:"

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.logger = get_logger("auth.registry.redis")
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
            self.logger.info("Redis registration store started")
        except redis.RedisError as e:
            self.logger.error("Failed to start Redis registration store", error=str(e))
            raise StorageError("Registration store unavailable", details={"error": str(e)}) from e

    async def stop(self):
        if self.redis:
            await self.redis.aclose()
            self.logger.info("Redis registration store stopped")

    async def health_check(self) -> bool:
        try:
            return bool(await self._client().ping())
        except (StorageError, redis.RedisError):
            return False

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise StorageError("Registration store not started")
        return self.redis

    def _key(self, identifier: str) -> str:
        return f"{self.KEY_PREFIX}{identifier}"

    async def get(self, identifier: str) -> Optional[RegistrationRecord]:
        try:
            data = await self._client().get(self._key(identifier))
        except redis.RedisError as e:
            raise StorageError("Failed to read registration", details={"error": str(e)}) from e
        if not data:
            return None
        try:
            return RegistrationRecord.model_validate_json(data)
        except ValueError as e:
            raise StorageError("Stored registration is corrupt", details={"error": str(e)}) from e

    async def put(self, record: RegistrationRecord) -> bool:
        try:
            created = await self._client().set(
                self._key(record.identifier),
                record.model_dump_json(),
                nx=True
            )
        except redis.RedisError as e:
            raise StorageError("Failed to store registration", details={"error": str(e)}) from e
        return bool(created)

    async def exists(self, identifier: str) -> bool:
        try:
            return bool(await self._client().exists(self._key(identifier)))
        except redis.RedisError as e:
            raise StorageError("Failed to check registration", details={"error": str(e)}) from e
