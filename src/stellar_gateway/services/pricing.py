"""Prompt pricing for the gateway."""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Final, Literal

from stellar_gateway.core.settings import settings

CHARS_PER_TOKEN: Final[int] = 4
STROOPS_PER_XLM: Final[int] = 10_000_000
# One stroop, the smallest amount the ledger can represent.
MIN_LEDGER_AMOUNT: Final[Decimal] = Decimal("0.0000001")

Tier = Literal["short", "long"]


@dataclass(frozen=True)
class CostEstimate:
    """Deterministic price quote for a prompt."""

    tokens: int
    cost: Decimal
    tier: Tier


@dataclass(frozen=True)
class BalanceCheck:
    """Result of comparing a balance against a required amount."""

    sufficient: bool
    current: Decimal
    required: Decimal

    @property
    def deficit(self) -> Decimal | None:
        if self.sufficient:
            return None
        return self.required - self.current


class PricingService:
    """Stateless estimator mapping prompt text to a tiered price."""

    def __init__(
        self,
        *,
        price_short: Decimal | None = None,
        price_long: Decimal | None = None,
        short_limit_tokens: int | None = None,
        asset: str | None = None,
    ) -> None:
        self.price_short = price_short if price_short is not None else settings.price_short_xlm
        self.price_long = price_long if price_long is not None else settings.price_long_xlm
        self.short_limit_tokens = (
            short_limit_tokens if short_limit_tokens is not None else settings.short_limit_tokens
        )
        self.asset = asset or settings.default_asset

    @staticmethod
    def estimate_tokens(text: str) -> int:
        """Approximate the token count at four characters per token."""
        return math.ceil(len(text) / CHARS_PER_TOKEN)

    def estimate_cost(self, text: str) -> CostEstimate:
        """Return the token estimate, price and tier for ``text``."""
        tokens = self.estimate_tokens(text)
        if tokens <= self.short_limit_tokens:
            return CostEstimate(tokens=tokens, cost=self.price_short, tier="short")
        return CostEstimate(tokens=tokens, cost=self.price_long, tier="long")

    @staticmethod
    def validate_balance(current: Decimal, required: Decimal) -> BalanceCheck:
        return BalanceCheck(sufficient=current >= required, current=current, required=required)

    def pricing_info(self) -> dict[str, Any]:
        """Describe the pricing table for clients."""
        return {
            "short": {
                "price": float(self.price_short),
                "maxTokens": self.short_limit_tokens,
                "description": "Short, direct prompts",
            },
            "long": {
                "price": float(self.price_long),
                "minTokens": self.short_limit_tokens + 1,
                "description": "Long, complex prompts",
            },
            "asset": self.asset,
            "estimationMethod": f"Based on text length (~{CHARS_PER_TOKEN} chars/token)",
        }

    def format_amount(self, amount: Decimal | float) -> str:
        return f"{Decimal(str(amount)):.4f} {self.asset}"


def to_stroops(amount: Decimal) -> int:
    """Convert lumens to stroops, truncating below one stroop."""
    return int(amount * STROOPS_PER_XLM)


def from_stroops(stroops: int | str) -> Decimal:
    return Decimal(int(stroops)) / STROOPS_PER_XLM


def get_pricing_service() -> PricingService:
    """Return a pricing service configured from settings."""
    return PricingService()
