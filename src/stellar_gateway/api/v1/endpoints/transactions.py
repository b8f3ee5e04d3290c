"""Endpoints linking usage records to ledger transactions."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from stellar_gateway.core.errors import InvalidInputError
from stellar_gateway.schemas.transactions import AssociateTransactionRequest
from stellar_gateway.services.usage import UsageLedger, is_placeholder_reference
from stellar_gateway.services.user_service import (
    get_user_by_wallet,
    require_address,
    require_user,
)

from ..dependencies import PricingDep, SessionDep
from .usage import serialize_usage

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.post("/associate")
async def associate_transaction(
    request: AssociateTransactionRequest,
    db: SessionDep,
) -> dict[str, Any]:
    """Back-fill a real transaction hash onto one of the caller's usage records."""
    if not request.wallet_address or not request.tx_hash or request.usage_log_id is None:
        raise InvalidInputError(
            "MISSING_REQUIRED_FIELDS",
            "Wallet address, transaction hash and usage log id are required",
        )
    wallet_address = require_address(request.wallet_address)
    user = require_user(db, wallet_address)
    record = UsageLedger(db).attach_transaction(request.usage_log_id, user.id, request.tx_hash)
    return {
        "success": True,
        "message": "Transaction associated",
        "txHash": record.tx_hash,
        "usageLogId": record.id,
    }


@router.get("/{wallet_address}")
async def list_transactions(
    wallet_address: str,
    db: SessionDep,
    pricing: PricingDep,
) -> dict[str, Any]:
    """Return the wallet's usage records that carry a transaction reference."""
    wallet_address = require_address(wallet_address)
    user = get_user_by_wallet(db, wallet_address)
    records = UsageLedger(db).with_transactions(user.id) if user is not None else []
    transactions = []
    for record in records:
        entry = serialize_usage(record, pricing)
        entry["placeholder"] = is_placeholder_reference(record.tx_hash)
        transactions.append(entry)
    return {
        "walletAddress": wallet_address,
        "transactions": transactions,
        "total": len(transactions),
    }
