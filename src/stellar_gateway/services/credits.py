"""Off-chain credit ledger backed by the relational store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.sql.dml import Update

from stellar_gateway.core.errors import (
    InsufficientBalanceError,
    InvalidInputError,
    UserNotFoundError,
)
from stellar_gateway.core.settings import settings
from stellar_gateway.db.time import days_ago, utcnow
from stellar_gateway.models import Balance, UsageRecord, User
from stellar_gateway.models.balance import AMOUNT_SCALE
from stellar_gateway.services.pricing import BalanceCheck, PricingService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class BalanceChange:
    """Balance after a debit or credit."""

    wallet_address: str
    asset: str
    balance: Decimal
    delta: Decimal


@dataclass(frozen=True)
class UsageStats:
    """Aggregate usage over a trailing window."""

    total_requests: int
    total_cost: Decimal
    avg_execution_time: float
    period_days: int


class CreditsService:
    """Atomic debit/credit operations over the ``credits`` table.

    Every mutation is a single conditional ``UPDATE`` so concurrent requests
    for the same wallet cannot overdraw it.
    """

    def __init__(self, db: Session, *, asset: str | None = None) -> None:
        self.db = db
        self.default_asset = asset or settings.default_asset

    def _user_id(self, wallet_address: str) -> int:
        user_id = self.db.scalar(select(User.id).where(User.wallet_address == wallet_address))
        if user_id is None:
            raise UserNotFoundError(wallet_address)
        return user_id

    def _read_amount(self, user_id: int, asset: str) -> Decimal:
        amount = self.db.scalar(
            select(Balance.amount).where(Balance.user_id == user_id, Balance.asset == asset)
        )
        return amount if amount is not None else ZERO

    @staticmethod
    def _increment(user_id: int, asset: str, amount: Decimal) -> Update:
        return (
            update(Balance)
            .where(Balance.user_id == user_id, Balance.asset == asset)
            .values(
                amount=func.round(Balance.amount + amount, AMOUNT_SCALE),
                updated_at=utcnow(),
            )
        )

    @staticmethod
    def _decrement(user_id: int, asset: str, amount: Decimal) -> Update:
        # Compare-and-decrement: the row only changes if it still covers amount.
        return (
            update(Balance)
            .where(
                Balance.user_id == user_id,
                Balance.asset == asset,
                Balance.amount >= amount,
            )
            .values(
                amount=func.round(Balance.amount - amount, AMOUNT_SCALE),
                updated_at=utcnow(),
            )
        )

    @staticmethod
    def _require_positive(amount: Decimal) -> Decimal:
        if amount <= ZERO:
            raise InvalidInputError("INVALID_AMOUNT", "Amount must be positive")
        return amount

    def get_balance(self, wallet_address: str, asset: str | None = None) -> Decimal:
        """Return the balance for a wallet, or zero if it has no row."""
        asset = asset or self.default_asset
        user_id = self.db.scalar(select(User.id).where(User.wallet_address == wallet_address))
        if user_id is None:
            return ZERO
        return self._read_amount(user_id, asset)

    def credit(
        self,
        wallet_address: str,
        amount: Decimal,
        asset: str | None = None,
    ) -> BalanceChange:
        """Add ``amount`` to the wallet's balance, creating the row if needed."""
        asset = asset or self.default_asset
        amount = self._require_positive(amount)
        user_id = self._user_id(wallet_address)

        result = self.db.execute(self._increment(user_id, asset, amount))
        if result.rowcount == 0:
            self.db.add(Balance(user_id=user_id, asset=asset, amount=amount))
            try:
                self.db.flush()
            except IntegrityError:
                # Another request created the row first; add to it instead.
                self.db.rollback()
                self.db.execute(self._increment(user_id, asset, amount))
        self.db.commit()

        balance = self._read_amount(user_id, asset)
        logger.info("Credited %s %s to %s (balance %s)", amount, asset, wallet_address, balance)
        return BalanceChange(wallet_address, asset, balance, amount)

    def debit(
        self,
        wallet_address: str,
        amount: Decimal,
        asset: str | None = None,
    ) -> BalanceChange:
        """Subtract ``amount`` from the wallet's balance.

        Raises:
            InsufficientBalanceError: The balance is lower than ``amount``;
                the row is left untouched.
        """
        asset = asset or self.default_asset
        amount = self._require_positive(amount)
        user_id = self._user_id(wallet_address)

        result = self.db.execute(self._decrement(user_id, asset, amount))
        if result.rowcount == 0:
            self.db.rollback()
            current = self._read_amount(user_id, asset)
            raise InsufficientBalanceError(required=amount, current=current)
        self.db.commit()

        balance = self._read_amount(user_id, asset)
        logger.info("Debited %s %s from %s (balance %s)", amount, asset, wallet_address, balance)
        return BalanceChange(wallet_address, asset, balance, -amount)

    def check_sufficient(
        self,
        wallet_address: str,
        amount: Decimal,
        asset: str | None = None,
    ) -> BalanceCheck:
        """Compare the current balance with ``amount`` without mutating it."""
        current = self.get_balance(wallet_address, asset)
        return PricingService.validate_balance(current, amount)

    def usage_stats(self, wallet_address: str, days: int = 30) -> UsageStats:
        """Aggregate the wallet's usage over the trailing ``days``."""
        since = days_ago(days)
        row = self.db.execute(
            select(
                func.count(UsageRecord.id),
                func.sum(UsageRecord.cost_amount),
                func.avg(UsageRecord.execution_time),
            )
            .join(User, User.id == UsageRecord.user_id)
            .where(User.wallet_address == wallet_address, UsageRecord.created_at >= since)
        ).one()
        total_requests, total_cost, avg_time = row
        return UsageStats(
            total_requests=int(total_requests or 0),
            total_cost=Decimal(str(total_cost)) if total_cost is not None else ZERO,
            avg_execution_time=float(avg_time or 0.0),
            period_days=days,
        )
