"""
Auth service for KeyAuth.
"""

import asyncio
import contextlib
import time
from typing import Callable, Dict, Optional

from fastapi import Depends

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.errors import StorageError, UserNotFound
from .challenges.issuer import ChallengeIssuer
from .challenges.store import ChallengeStore, InMemoryChallengeStore, RedisChallengeStore
from .models import (
    AuthenticateRequest,
    AuthenticateResponse,
    ChallengeRequest,
    ChallengeResponse,
    IdentityResponse,
)
from .orchestrator import AuthOrchestrator
from .registry.store import InMemoryRegistrationStore, RedisRegistrationStore, RegistrationStore
from .tokens.issuer import SessionTokenIssuer
from .validation.token_validator import TokenValidator, TokenVerificationRequest, TokenVerificationResponse


class AuthService(BaseService):
    """Auth service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        challenge_store: Optional[ChallengeStore] = None,
        registration_store: Optional[RegistrationStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__("auth", 8010, config=config)

        if self.config.uses_default_secret and self.config.env != "local":
            self.logger.warning("Using the default token signing secret outside local environment")

        self.redis_backed = challenge_store is None and self.config.redis_url is not None
        if challenge_store is None:
            challenge_store = (
                RedisChallengeStore(self.config.redis_url)
                if self.config.redis_url else InMemoryChallengeStore()
            )
        if registration_store is None:
            registration_store = (
                RedisRegistrationStore(self.config.redis_url)
                if self.config.redis_url else InMemoryRegistrationStore()
            )

        self.challenge_store = challenge_store
        self.registration_store = registration_store
        self.challenge_issuer = ChallengeIssuer(
            challenge_store,
            ttl_seconds=self.config.challenge_ttl_seconds,
            clock=clock
        )
        self.token_issuer = SessionTokenIssuer(
            self.config.verification_secrets,
            ttl_seconds=self.config.session_ttl_seconds,
            algorithm=self.config.jwt_algorithm,
            clock=clock
        )
        self.token_validator = TokenValidator(self.token_issuer, metrics=self.metrics)
        self.orchestrator = AuthOrchestrator(
            registration_store,
            self.challenge_issuer,
            self.token_issuer,
            metrics=self.metrics
        )
        self._sweeper: Optional[asyncio.Task] = None

        self._setup_auth_routes()

    def _setup_auth_routes(self):
        """Set up auth-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "auth",
                "message": "KeyAuth - Auth Service",
                "version": "1.0.0"
            }

        @self.app.post("/challenge", response_model=ChallengeResponse)
        async def challenge(request: ChallengeRequest):
            """Issue a challenge, registering the identifier on first contact."""
            nonce = await self.orchestrator.request_challenge(request.identifier, request.public_key)
            return ChallengeResponse(challenge=nonce)

        @self.app.post("/authenticate", response_model=AuthenticateResponse)
        async def authenticate(request: AuthenticateRequest):
            """Redeem a signed challenge for a session token."""
            with self.metrics.time_operation("authentication_duration_seconds"):
                token = await self.orchestrator.authenticate(request.identifier, request.signature)
            return AuthenticateResponse(token=token)

        @self.app.post("/verify", response_model=TokenVerificationResponse)
        async def verify_token(request: TokenVerificationRequest):
            """Token verification endpoint for downstream services."""
            return self.token_validator.verify_token(request.token)

        @self.app.get("/me", response_model=IdentityResponse)
        async def me(identifier: str = Depends(self.token_validator.require_identity())):
            """Describe the identity behind the bearer token."""
            record = await self.registration_store.get(identifier)
            if record is None:
                raise UserNotFound(details={"identifier": identifier})
            return IdentityResponse(identifier=record.identifier, created_at=record.created_at)

    async def startup(self):
        await self.challenge_store.start()
        await self.registration_store.start()

        interval = self.config.challenge_sweep_interval_seconds
        if interval > 0:
            self._sweeper = asyncio.create_task(self._sweep_loop(interval))

    async def shutdown(self):
        try:
            if self._sweeper is not None:
                self._sweeper.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._sweeper
                self._sweeper = None
        finally:
            await self.challenge_store.stop()
            await self.registration_store.stop()

    async def _sweep_loop(self, interval: float):
        """Periodically evict expired challenges."""
        while True:
            await asyncio.sleep(interval)
            try:
                removed = await self.challenge_issuer.sweep()
            except StorageError as e:
                self.logger.warning("Challenge sweep failed", error=e.message)
                continue
            except Exception as e:
                self.logger.error("Challenge sweep crashed", error=str(e), exc_info=True)
                continue
            if removed:
                self.metrics.increment_counter("challenges_swept_total", amount=removed)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check auth dependencies."""
        if not self.redis_backed:
            return {}

        healthy = (
            await self.challenge_store.health_check()
            and await self.registration_store.health_check()
        )
        return {"redis": "ok" if healthy else "error"}


def create_app(config: Optional[ServiceConfig] = None, **kwargs):
    """Create FastAPI application."""
    service = AuthService(config=config, **kwargs)
    return service.app


if __name__ == "__main__":
    service = AuthService(config=get_config("auth", 8010))
    service.run()
