"""Wallet authentication and profile endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from stellar_gateway.schemas.auth import ProfileUpdate, UserProfile, WalletAuthRequest
from stellar_gateway.services.credits import CreditsService
from stellar_gateway.services.user_service import (
    get_or_create_user,
    require_address,
    require_user,
    update_profile,
)

from ..dependencies import LedgerDep, SessionDep

router = APIRouter(prefix="/auth", tags=["auth"])


def _profile(user: Any) -> dict[str, Any]:
    return UserProfile.model_validate(user).model_dump(mode="json", by_alias=True)


@router.post("/wallet")
async def authenticate_wallet(
    request: WalletAuthRequest,
    db: SessionDep,
    ledger: LedgerDep,
) -> dict[str, Any]:
    """Register or recognise a wallet and report its balances.

    First-time wallets receive the seed off-chain balance. The ledger account
    probe is informational and never fails the request.
    """
    wallet_address = require_address(request.wallet_address)
    user, created = get_or_create_user(db, wallet_address)
    credits = CreditsService(db)
    probe = await ledger.account_exists(wallet_address)

    return {
        "user": _profile(user),
        "isNewUser": created,
        "balance": float(credits.get_balance(wallet_address)),
        "asset": credits.default_asset,
        "stellarAccount": {
            "exists": probe.exists,
            "balance": float(probe.balance) if probe.balance is not None else None,
            "reason": probe.reason,
        },
    }


@router.get("/profile/{wallet_address}")
async def get_profile(wallet_address: str, db: SessionDep) -> dict[str, Any]:
    """Return the stored profile and off-chain balance of a wallet."""
    wallet_address = require_address(wallet_address)
    user = require_user(db, wallet_address)
    credits = CreditsService(db)
    return {
        "user": _profile(user),
        "balance": float(credits.get_balance(wallet_address)),
        "asset": credits.default_asset,
    }


@router.put("/profile/{wallet_address}")
async def put_profile(
    wallet_address: str,
    update_data: ProfileUpdate,
    db: SessionDep,
) -> dict[str, Any]:
    """Update name, email, bio or avatar URL."""
    wallet_address = require_address(wallet_address)
    user = require_user(db, wallet_address)
    user = update_profile(db, user, update_data)
    return {
        "walletAddress": wallet_address,
        "profile": _profile(user),
        "message": "Profile updated",
    }
