"""Thin wrappers over the Stellar ledger client."""

from __future__ import annotations

from dataclasses import asdict
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter

from stellar_gateway.core.errors import DemoDisabledError, InvalidInputError
from stellar_gateway.core.settings import settings
from stellar_gateway.schemas.stellar import (
    DemoPaymentRequest,
    SignTransactionRequest,
    ValidateAddressRequest,
)
from stellar_gateway.services.crypto import CryptoService
from stellar_gateway.services.user_service import require_address

from ..dependencies import LedgerDep, PricingDep

router = APIRouter(prefix="/stellar", tags=["stellar"])


def _require_development(action: str) -> None:
    if settings.is_production:
        raise DemoDisabledError(f"{action} is not available in production")


def _now() -> str:
    return datetime.now(UTC).isoformat()


@router.get("/balances/{account_id}")
async def get_balances(account_id: str, ledger: LedgerDep) -> dict[str, Any]:
    """Return every balance line of an activated account."""
    account_id = require_address(account_id)
    balances = await ledger.get_balances(account_id)
    return {
        "accountId": account_id,
        "balances": [
            {
                "asset": balance.asset,
                "balance": float(balance.amount),
                "limit": float(balance.limit) if balance.limit is not None else None,
                "assetType": balance.asset_type,
            }
            for balance in balances
        ],
        "network": settings.stellar_network,
        "timestamp": _now(),
    }


@router.post("/demo-payment")
async def create_demo_payment(
    request: DemoPaymentRequest,
    ledger: LedgerDep,
    pricing: PricingDep,
) -> dict[str, Any]:
    """Build an unsigned settlement payment at the short-tier price."""
    _require_development("Demo transactions")
    if not request.source_address:
        raise InvalidInputError("MISSING_SOURCE_ADDRESS", "Source address is required")
    source_address = require_address(request.source_address)
    unsigned = await ledger.build_payment_transaction(source_address, pricing.price_short)
    return {
        "success": True,
        "transaction": {
            "transactionXDR": unsigned.xdr,
            "source": unsigned.source,
            "destination": unsigned.destination,
            "amount": unsigned.amount,
            "memo": unsigned.memo,
            "fee": unsigned.fee_stroops,
            "timeout": unsigned.timeout_seconds,
        },
        "network": settings.stellar_network,
        "warning": "Demonstration transaction for educational use",
    }


@router.get("/account/{account_id}/info")
async def get_account_info(account_id: str, ledger: LedgerDep) -> dict[str, Any]:
    """Report whether an account is activated, without failing when it is not."""
    account_id = require_address(account_id)
    probe = await ledger.account_exists(account_id)
    info = asdict(probe)
    if probe.balance is not None:
        info["balance"] = float(probe.balance)
    return {
        "accountId": account_id,
        **info,
        "network": settings.stellar_network,
        "timestamp": _now(),
    }


@router.get("/network-info")
async def get_network_info(ledger: LedgerDep) -> dict[str, Any]:
    """Return the configured network and its latest ledger."""
    info = await ledger.network_info()
    info["endpoints"] = {
        "horizon": settings.stellar_horizon_url,
        "friendbot": settings.friendbot_url,
    }
    return info


@router.post("/validate-address")
async def validate_address(request: ValidateAddressRequest) -> dict[str, Any]:
    if not request.address:
        raise InvalidInputError("MISSING_ADDRESS", "Address is required")
    valid = CryptoService.is_valid_address(request.address)
    return {
        "address": request.address,
        "valid": valid,
        "format": "Ed25519 Public Key" if valid else "Invalid",
        "network": "Stellar",
        "timestamp": _now(),
    }


@router.post("/sign-transaction")
async def sign_transaction(request: SignTransactionRequest, ledger: LedgerDep) -> dict[str, Any]:
    """Sign a transaction envelope and submit it to the network."""
    _require_development("Transaction signing")
    if not request.transaction_xdr or not request.secret_key:
        raise InvalidInputError(
            "MISSING_PARAMETERS",
            "Transaction XDR and secret key are required",
        )
    result = await ledger.sign_and_submit(request.transaction_xdr, request.secret_key)
    return {
        "success": result.success,
        "transaction": {"txHash": result.tx_hash, "ledger": result.ledger},
        "network": settings.stellar_network,
    }


@router.get("/test-address")
async def generate_test_address() -> dict[str, Any]:
    """Generate a throwaway keypair for trying the gateway on testnet."""
    _require_development("Test address generation")
    public_key, secret_key = CryptoService.generate_keypair()
    return {
        "publicKey": public_key,
        "secretKey": secret_key,
        "network": settings.stellar_network,
        "instructions": {
            "step1": "Use the public key to sign in",
            "step2": f"Activate the account with Friendbot: {settings.friendbot_url}",
            "step3": "Add test funds if needed",
        },
    }
