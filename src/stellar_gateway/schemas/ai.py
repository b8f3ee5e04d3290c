"""Schemas for paid AI completions."""
from __future__ import annotations

from pydantic import Field

from .common import CamelModel


class CompletionRequest(CamelModel):
    """Body of ``POST /ai/completions``.

    A non-empty ``secret_key`` selects the real ledger payment path.
    """

    wallet_address: str | None = None
    prompt: str | None = None
    secret_key: str | None = Field(None, description="Optional Stellar secret seed (S...)")


class AITestRequest(CamelModel):
    prompt: str = "Reply with: ok"
