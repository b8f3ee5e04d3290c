"""Schemas for off-chain credits and pricing."""
from __future__ import annotations

from decimal import Decimal

from .common import CamelModel


class RealBalanceRequest(CamelModel):
    """Body of ``POST /credits/real-balance``."""

    secret_key: str | None = None


class TopupRequest(CamelModel):
    """Body of ``POST /credits/topup``."""

    wallet_address: str | None = None
    amount: Decimal | None = None


class CheckBalanceRequest(CamelModel):
    """Body of ``POST /credits/check-balance``."""

    wallet_address: str | None = None
    amount: Decimal | None = None


class EstimateCostRequest(CamelModel):
    """Body of ``POST /credits/estimate-cost``."""

    prompt: str | None = None
