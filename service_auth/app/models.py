"""
Request and response models for the Auth service endpoints.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ChallengeRequest(BaseModel):
    """Body of POST /challenge."""

    model_config = ConfigDict(populate_by_name=True)

    identifier: str = Field(min_length=1)
    public_key: str = Field(min_length=1, alias="publicKey")


class ChallengeResponse(BaseModel):
    challenge: str


class AuthenticateRequest(BaseModel):
    """Body of POST /authenticate."""

    identifier: str = Field(min_length=1)
    signature: str = Field(min_length=1)


class AuthenticateResponse(BaseModel):
    token: str


class IdentityResponse(BaseModel):
    identifier: str
    created_at: datetime
