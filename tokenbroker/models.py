"""Data models for stored credentials and provider token responses."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TokenRecord(BaseModel):
    """Credential persisted for a single identity."""

    model_config = ConfigDict(frozen=True)

    identity: str
    access_token: str
    refresh_token: str = ""
    scope: str = ""
    expires_at: int = Field(..., description="Absolute expiry, seconds since epoch")


class TokenResponse(BaseModel):
    """Payload returned by the provider token endpoint."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    scope: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None


class ConnectionStatus(BaseModel):
    """Connection summary reported without touching the provider."""

    connected: bool
    expires_at: Optional[int] = None
