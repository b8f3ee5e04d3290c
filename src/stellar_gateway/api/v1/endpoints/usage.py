"""Usage history endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Query

from stellar_gateway.core.errors import InvalidInputError
from stellar_gateway.db.time import days_ago, start_of_today
from stellar_gateway.models import UsageRecord
from stellar_gateway.schemas.common import Pagination
from stellar_gateway.services.credits import CreditsService
from stellar_gateway.services.pricing import PricingService
from stellar_gateway.services.usage import UsageLedger
from stellar_gateway.services.user_service import get_user_by_wallet, require_address

from ..dependencies import PricingDep, SessionDep

router = APIRouter(prefix="/usage", tags=["usage"])

MAX_LIMIT = 100
PERIOD_DAYS = {"7d": 7, "30d": 30}


def _period_start(period: str) -> datetime | None:
    if period == "all":
        return None
    if period == "today":
        return start_of_today()
    if period in PERIOD_DAYS:
        return days_ago(PERIOD_DAYS[period])
    raise InvalidInputError("INVALID_PERIOD", "Invalid period. Use: all, today, 7d, 30d")


def serialize_usage(record: UsageRecord, pricing: PricingService) -> dict[str, Any]:
    """Serialize a UsageRecord instance into API payload form."""
    return {
        "id": record.id,
        "promptHash": record.prompt_hash,
        "promptPreview": record.prompt_preview,
        "responsePreview": record.response_preview,
        "tokens": record.tokens_est,
        "tier": record.tier,
        "cost": float(record.cost_amount),
        "costFormatted": pricing.format_amount(record.cost_amount),
        "asset": record.cost_asset,
        "status": record.status,
        "executionTime": record.execution_time,
        "txHash": record.tx_hash,
        "createdAt": record.created_at.isoformat() if record.created_at else None,
    }


@router.get("")
async def list_usage(
    db: SessionDep,
    pricing: PricingDep,
    wallet_address: str | None = Query(None, alias="walletAddress"),
    limit: int = Query(20),
    offset: int = Query(0),
    period: str = Query("all"),
) -> dict[str, Any]:
    """Return the wallet's usage records newest first."""
    wallet_address = require_address(wallet_address)
    if limit < 1 or limit > MAX_LIMIT:
        raise InvalidInputError("INVALID_LIMIT", "Limit must be between 1 and 100")
    if offset < 0:
        raise InvalidInputError("INVALID_OFFSET", "Offset must be zero or greater")
    since = _period_start(period)

    user = get_user_by_wallet(db, wallet_address)
    records = (
        UsageLedger(db).query_recent(user.id, limit=limit, offset=offset, since=since)
        if user is not None
        else []
    )

    total_cost = sum((record.cost_amount for record in records), Decimal("0"))
    avg_time = (
        sum(record.execution_time or 0 for record in records) / len(records) if records else 0
    )
    return {
        "usage": [serialize_usage(record, pricing) for record in records],
        "pagination": Pagination(
            limit=limit, offset=offset, total=len(records), has_more=len(records) == limit
        ).model_dump(by_alias=True),
        "stats": {
            "totalRequests": len(records),
            "totalCost": float(total_cost),
            "totalCostFormatted": pricing.format_amount(total_cost),
            "avgExecutionTime": avg_time,
            "avgExecutionTimeFormatted": f"{round(avg_time)}ms",
        },
        "period": period,
    }


@router.get("/stats")
async def usage_stats(
    db: SessionDep,
    pricing: PricingDep,
    wallet_address: str | None = Query(None, alias="walletAddress"),
) -> dict[str, Any]:
    """Return 30-day totals plus a per-day breakdown of the last week."""
    wallet_address = require_address(wallet_address)
    overall = CreditsService(db).usage_stats(wallet_address, days=30)
    user = get_user_by_wallet(db, wallet_address)
    daily = UsageLedger(db).daily_breakdown(user.id, days=7) if user is not None else []

    most_active = max(daily, key=lambda day: day["requests"], default=None)
    return {
        "overall": {
            "totalRequests": overall.total_requests,
            "totalCost": float(overall.total_cost),
            "totalCostFormatted": pricing.format_amount(overall.total_cost),
            "avgExecutionTime": overall.avg_execution_time,
            "avgExecutionTimeFormatted": f"{round(overall.avg_execution_time)}ms",
            "periodDays": overall.period_days,
        },
        "daily": daily,
        "summary": {
            "mostActiveDay": most_active,
            "totalWeeklyRequests": sum(day["requests"] for day in daily),
            "totalWeeklyCost": sum(day["cost"] for day in daily),
        },
    }
