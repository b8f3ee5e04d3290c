"""Schemas for transaction back-filling."""
from __future__ import annotations

from .common import CamelModel


class AssociateTransactionRequest(CamelModel):
    """Body of ``POST /transactions/associate``."""

    wallet_address: str | None = None
    tx_hash: str | None = None
    usage_log_id: int | None = None
