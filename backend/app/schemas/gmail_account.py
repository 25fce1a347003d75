from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class GmailConnectIn(BaseModel):
    token: str = Field(min_length=1, description="Google authorization code (or access token, per GMAIL_OAUTH_FLOW)")
    is_primary: bool = False


class GmailAccountOut(BaseModel):
    """Sanitized Gmail account view. Access/refresh tokens are never part of it."""

    id: int
    user_id: int
    email: str
    provider_id: str
    status: str
    is_primary: bool
    token_expiry: datetime | None = None
    last_synced_at: datetime | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class GmailAccountListOut(BaseModel):
    accounts: list[GmailAccountOut]
    count: int
    max_accounts: int
    plan: str
