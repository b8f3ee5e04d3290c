# src/stellar_gateway/models/usage.py
"""Append-only audit trail of paid AI requests."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stellar_gateway.db.session import Base
from stellar_gateway.db.time import utcnow

from .balance import AMOUNT_SCALE

if TYPE_CHECKING:
    from .user import User

USAGE_STATUS_COMPLETED = "completed"
USAGE_STATUS_FAILED = "failed"
USAGE_STATUS_PENDING = "pending"


class UsageRecord(Base):
    """One row per completed (or attempted) AI request.

    Rows are never updated except to attach a real transaction hash after the
    fact; ``tx_hash`` is unique so a hash can never move between records.
    """

    __tablename__ = "usage_logs"
    __table_args__ = (
        CheckConstraint(
            "status IN ('completed', 'failed', 'pending')",
            name="ck_usage_logs_status",
        ),
        Index("ix_usage_logs_user_id", "user_id"),
        Index("ix_usage_logs_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Truncated SHA-256 of the exact prompt; an audit key, not a secret.
    prompt_hash: Mapped[str] = mapped_column(String(16), nullable=False)
    prompt_preview: Mapped[str] = mapped_column(Text, nullable=False)
    tokens_est: Mapped[int] = mapped_column(Integer, nullable=False)
    tier: Mapped[str | None] = mapped_column(String(8), nullable=True)
    cost_asset: Mapped[str] = mapped_column(String(12), nullable=False, default="XLM")
    cost_amount: Mapped[Decimal] = mapped_column(Numeric(20, AMOUNT_SCALE), nullable=False)
    response_preview: Mapped[str | None] = mapped_column(Text, nullable=True)
    tx_hash: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=USAGE_STATUS_COMPLETED
    )
    execution_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    user: Mapped[User] = relationship("User", back_populates="usage_records")
