# src/stellar_gateway/models/user.py
"""SQLAlchemy model for wallet-identified users."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stellar_gateway.db.session import Base
from stellar_gateway.db.time import utcnow

if TYPE_CHECKING:
    from .balance import Balance
    from .conversation import Conversation
    from .usage import UsageRecord


class User(Base):
    """Gateway user keyed by a Stellar account address.

    Users are created on first wallet authentication and never deleted.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(56), unique=True, nullable=False)

    # Optional, mutable display profile.
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    balances: Mapped[list[Balance]] = relationship(
        "Balance",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    conversations: Mapped[list[Conversation]] = relationship(
        "Conversation",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    usage_records: Mapped[list[UsageRecord]] = relationship(
        "UsageRecord",
        back_populates="user",
        cascade="all, delete-orphan",
    )
