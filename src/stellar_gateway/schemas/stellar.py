"""Schemas for the thin ledger routes."""
from __future__ import annotations

from .common import CamelModel


class DemoPaymentRequest(CamelModel):
    """Body of ``POST /stellar/demo-payment``."""

    source_address: str | None = None


class ValidateAddressRequest(CamelModel):
    address: str | None = None


class SignTransactionRequest(CamelModel):
    """Body of ``POST /stellar/sign-transaction``."""

    transaction_xdr: str | None = None
    secret_key: str | None = None
