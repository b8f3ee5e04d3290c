"""Off-chain credit, balance and pricing endpoints."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Query

from stellar_gateway.core.errors import InvalidInputError
from stellar_gateway.core.settings import settings
from stellar_gateway.schemas.credits import (
    CheckBalanceRequest,
    EstimateCostRequest,
    RealBalanceRequest,
    TopupRequest,
)
from stellar_gateway.services.credits import CreditsService
from stellar_gateway.services.user_service import get_or_create_user, require_address

from ..dependencies import LedgerDep, PricingDep, SessionDep

router = APIRouter(prefix="/credits", tags=["credits"])


@router.post("/real-balance")
async def get_real_balance(
    request: RealBalanceRequest,
    ledger: LedgerDep,
    pricing: PricingDep,
) -> dict[str, Any]:
    """Return the native balance of the account controlled by ``secretKey``."""
    if not request.secret_key:
        raise InvalidInputError("MISSING_SECRET_KEY", "Secret key is required")
    account = await ledger.get_real_balance(request.secret_key)
    balance = account.native_balance
    return {
        "walletAddress": account.account_id,
        "balance": float(balance),
        "asset": "XLM",
        "formatted": pricing.format_amount(balance),
        "source": "stellar-network",
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/balance")
async def get_balance(
    db: SessionDep,
    pricing: PricingDep,
    wallet_address: str | None = Query(None, alias="walletAddress"),
) -> dict[str, Any]:
    """Return the off-chain balance and 30-day usage statistics."""
    wallet_address = require_address(wallet_address)
    credits = CreditsService(db, asset=pricing.asset)
    balance = credits.get_balance(wallet_address)
    stats = credits.usage_stats(wallet_address)
    return {
        "walletAddress": wallet_address,
        "balance": float(balance),
        "asset": credits.default_asset,
        "formatted": pricing.format_amount(balance),
        "stats": {
            "totalRequests": stats.total_requests,
            "totalCost": float(stats.total_cost),
            "avgExecutionTime": stats.avg_execution_time,
            "periodDays": stats.period_days,
        },
    }


@router.post("/topup")
async def topup(
    request: TopupRequest,
    db: SessionDep,
    pricing: PricingDep,
) -> dict[str, Any]:
    """Add simulated credits, capped per call."""
    if not request.wallet_address or request.amount is None:
        raise InvalidInputError(
            "MISSING_REQUIRED_FIELDS",
            "Wallet address and amount are required",
        )
    wallet_address = require_address(request.wallet_address)
    if request.amount <= 0:
        raise InvalidInputError("INVALID_AMOUNT", "Amount must be a positive number")
    if request.amount > settings.max_topup_amount:
        raise InvalidInputError(
            "AMOUNT_TOO_HIGH",
            f"Maximum top-up per request: {settings.max_topup_amount} {pricing.asset}",
        )

    get_or_create_user(db, wallet_address)
    change = CreditsService(db, asset=pricing.asset).credit(wallet_address, request.amount)
    return {
        "walletAddress": wallet_address,
        "balance": float(change.balance),
        "added": float(change.delta),
        "asset": change.asset,
        "formatted": {
            "balance": pricing.format_amount(change.balance),
            "added": pricing.format_amount(change.delta),
        },
        "note": "Off-chain simulation; no ledger funds were moved",
    }


@router.post("/check-balance")
async def check_balance(
    request: CheckBalanceRequest,
    db: SessionDep,
) -> dict[str, Any]:
    """Report whether the off-chain balance covers ``amount``."""
    if not request.wallet_address or request.amount is None:
        raise InvalidInputError(
            "MISSING_REQUIRED_FIELDS",
            "Wallet address and amount are required",
        )
    wallet_address = require_address(request.wallet_address)
    if request.amount <= 0:
        raise InvalidInputError("INVALID_AMOUNT", "Amount must be a positive number")

    check = CreditsService(db).check_sufficient(wallet_address, request.amount)
    return {
        "walletAddress": wallet_address,
        "sufficient": check.sufficient,
        "current": float(check.current),
        "required": float(check.required),
        "deficit": float(check.deficit) if check.deficit is not None else None,
    }


@router.get("/pricing")
async def get_pricing(pricing: PricingDep) -> dict[str, Any]:
    """Describe the tiered price table."""
    return pricing.pricing_info()


@router.post("/estimate-cost")
async def estimate_cost(request: EstimateCostRequest, pricing: PricingDep) -> dict[str, Any]:
    """Price a prompt without charging for it."""
    if request.prompt is None:
        raise InvalidInputError("MISSING_PROMPT", "Prompt is required")
    if len(request.prompt) > settings.max_prompt_length:
        raise InvalidInputError(
            "PROMPT_TOO_LONG",
            f"Prompt too long (maximum {settings.max_prompt_length} characters)",
        )
    estimate = pricing.estimate_cost(request.prompt)
    return {
        "tokens": estimate.tokens,
        "cost": float(estimate.cost),
        "tier": estimate.tier,
        "asset": pricing.asset,
        "formatted": pricing.format_amount(estimate.cost),
        "characters": len(request.prompt),
    }
