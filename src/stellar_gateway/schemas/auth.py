"""Wallet authentication and profile schemas."""
from __future__ import annotations

from datetime import datetime

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from .common import CamelModel


class WalletAuthRequest(CamelModel):
    """Body of ``POST /auth/wallet``."""

    wallet_address: str | None = Field(None, description="Stellar account id (G...)")


class ProfileUpdate(CamelModel):
    """Partial profile update; omitted fields keep their value."""

    name: str | None = None
    email: str | None = None
    bio: str | None = None
    avatar_url: str | None = None


class UserProfile(CamelModel):
    """Public view of a user record."""

    id: int
    wallet_address: str
    name: str | None = None
    email: str | None = None
    bio: str | None = None
    avatar_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
