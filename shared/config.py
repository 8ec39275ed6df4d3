"""
Shared configuration management for KeyAuth.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_JWT_SECRET = "demo-secret-key-change-in-production"


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="KEYAUTH_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Stores; no Redis URL means in-memory stores
    redis_url: Optional[str] = Field(default=None)

    # Session tokens
    jwt_secret: str = Field(default=DEFAULT_JWT_SECRET)
    jwt_previous_secrets: List[str] = Field(default_factory=list)
    jwt_algorithm: str = Field(default="HS256")
    session_ttl_seconds: int = Field(default=3600, gt=0)

    # Challenges
    challenge_ttl_seconds: int = Field(default=120, gt=0)
    challenge_sweep_interval_seconds: float = Field(default=30.0, ge=0)

    @property
    def verification_secrets(self) -> List[str]:
        """Secrets accepted for token verification, current secret first."""
        return [self.jwt_secret] + [s for s in self.jwt_previous_secrets if s != self.jwt_secret]

    @property
    def uses_default_secret(self) -> bool:
        return self.jwt_secret == DEFAULT_JWT_SECRET


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


class ClientConfig(BaseSettings):
    """Configuration for the key-holding client."""

    model_config = SettingsConfigDict(
        env_prefix="KEYAUTH_CLIENT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    auth_service_url: str = Field(default="http://localhost:8010")
    key_store_dir: str = Field(default="~/.keyauth")
    key_slot: str = Field(default="userKey")
    key_passphrase: Optional[str] = Field(default=None)
    request_timeout: float = Field(default=10.0, gt=0)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)


def get_client_config(**overrides) -> ClientConfig:
    """Get configuration for the client."""
    return ClientConfig(**overrides)
