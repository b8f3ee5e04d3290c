# src/stellar_gateway/models/balance.py
"""Off-chain credit balances."""

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
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stellar_gateway.db.session import Base
from stellar_gateway.db.time import utcnow

if TYPE_CHECKING:
    from .user import User

# Stellar amounts carry seven decimal places (one stroop).
AMOUNT_SCALE = 7


class Balance(Base):
    """Simulated per-user, per-asset balance.

    Rows are only mutated through the atomic debit/credit helpers in
    :mod:`stellar_gateway.services.credits`.
    """

    __tablename__ = "credits"
    __table_args__ = (
        UniqueConstraint("user_id", "asset", name="uq_credits_user_asset"),
        CheckConstraint("amount >= 0", name="ck_credits_amount_non_negative"),
        Index("ix_credits_user_id", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    asset: Mapped[str] = mapped_column(String(12), nullable=False, default="XLM")
    amount: Mapped[Decimal] = mapped_column(
        Numeric(20, AMOUNT_SCALE),
        nullable=False,
        default=Decimal("0"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    user: Mapped[User] = relationship("User", back_populates="balances")
