"""Append-only usage ledger."""

from __future__ import annotations

import hashlib
import secrets
import string
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Final

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stellar_gateway.core.errors import InvalidInputError, UsageLogNotFoundError
from stellar_gateway.db.time import days_ago, epoch_millis
from stellar_gateway.models import UsageRecord
from stellar_gateway.models.usage import USAGE_STATUS_COMPLETED

PROMPT_HASH_LENGTH: Final[int] = 16
PLACEHOLDER_PREFIX: Final[str] = "demo_"
_BASE36: Final[str] = string.digits + string.ascii_lowercase


def hash_prompt(prompt: str) -> str:
    """Return the truncated SHA-256 hex digest used to audit prompts."""
    return hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:PROMPT_HASH_LENGTH]


def generate_placeholder_reference() -> str:
    """Return a locally generated stand-in for a ledger transaction hash."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{PLACEHOLDER_PREFIX}{epoch_millis()}_{suffix}"


def is_placeholder_reference(tx_hash: str | None) -> bool:
    return bool(tx_hash) and tx_hash.startswith(PLACEHOLDER_PREFIX)  # type: ignore[union-attr]


@dataclass(frozen=True)
class UsageEntry:
    """Values recorded for one AI request."""

    prompt: str
    response: str
    tokens: int
    cost: Decimal
    asset: str
    tier: str | None
    tx_hash: str | None
    execution_time_ms: int
    status: str = USAGE_STATUS_COMPLETED
    prompt_preview_length: int = 90
    response_preview_length: int = 200


class UsageLedger:
    """Writes and queries :class:`UsageRecord` rows."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def append(self, user_id: int, entry: UsageEntry) -> UsageRecord:
        """Insert a new usage record and return it."""
        record = UsageRecord(
            user_id=user_id,
            prompt_hash=hash_prompt(entry.prompt),
            prompt_preview=entry.prompt[: entry.prompt_preview_length],
            tokens_est=entry.tokens,
            tier=entry.tier,
            cost_asset=entry.asset,
            cost_amount=entry.cost,
            response_preview=entry.response[: entry.response_preview_length],
            tx_hash=entry.tx_hash,
            status=entry.status,
            execution_time=entry.execution_time_ms,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def attach_transaction(self, record_id: int, user_id: int, tx_hash: str) -> UsageRecord:
        """Back-fill a real ledger hash onto a record owned by ``user_id``.

        Only empty or placeholder references may be replaced, and a hash that
        is already attached elsewhere is refused.

        Raises:
            UsageLogNotFoundError: No record with that id belongs to the user.
            InvalidInputError: The record already carries a real hash, or the
                hash belongs to another record.
        """
        record = self.db.scalar(
            select(UsageRecord).where(UsageRecord.id == record_id, UsageRecord.user_id == user_id)
        )
        if record is None:
            raise UsageLogNotFoundError(record_id)

        try:
            result = self.db.execute(
                update(UsageRecord)
                .where(
                    UsageRecord.id == record_id,
                    UsageRecord.user_id == user_id,
                    or_(
                        UsageRecord.tx_hash.is_(None),
                        UsageRecord.tx_hash.startswith(PLACEHOLDER_PREFIX),
                    ),
                )
                .values(tx_hash=tx_hash)
            )
        except IntegrityError as err:
            self.db.rollback()
            raise InvalidInputError(
                "TX_HASH_ALREADY_ASSOCIATED",
                "Transaction hash is already associated with another usage log",
            ) from err

        if result.rowcount == 0:
            self.db.rollback()
            raise InvalidInputError(
                "TX_HASH_ALREADY_SET",
                "Usage log already references a ledger transaction",
            )
        self.db.commit()
        self.db.refresh(record)
        return record

    def query_recent(
        self,
        user_id: int,
        *,
        limit: int = 20,
        offset: int = 0,
        since: datetime | None = None,
    ) -> Sequence[UsageRecord]:
        """Return the user's records newest-first."""
        query = select(UsageRecord).where(UsageRecord.user_id == user_id)
        if since is not None:
            query = query.where(UsageRecord.created_at >= since)
        query = (
            query.order_by(UsageRecord.created_at.desc(), UsageRecord.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return self.db.scalars(query).all()

    def with_transactions(self, user_id: int) -> Sequence[UsageRecord]:
        """Return the user's records carrying any transaction reference."""
        return self.db.scalars(
            select(UsageRecord)
            .where(UsageRecord.user_id == user_id, UsageRecord.tx_hash.is_not(None))
            .order_by(UsageRecord.created_at.desc(), UsageRecord.id.desc())
        ).all()

    def daily_breakdown(self, user_id: int, days: int = 7) -> list[dict[str, Any]]:
        """Group the trailing ``days`` of usage per calendar day."""
        since = days_ago(days)
        records = self.db.scalars(
            select(UsageRecord).where(
                UsageRecord.user_id == user_id, UsageRecord.created_at >= since
            )
        ).all()

        buckets: dict[str, dict[str, Any]] = defaultdict(
            lambda: {"requests": 0, "cost": Decimal("0"), "execution_time": 0}
        )
        for record in records:
            bucket = buckets[record.created_at.date().isoformat()]
            bucket["requests"] += 1
            bucket["cost"] += record.cost_amount
            bucket["execution_time"] += record.execution_time or 0

        return [
            {
                "date": day,
                "requests": bucket["requests"],
                "cost": float(bucket["cost"]),
                "avgExecutionTime": bucket["execution_time"] / bucket["requests"],
            }
            for day, bucket in sorted(buckets.items())
        ]
