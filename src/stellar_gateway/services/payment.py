"""Pay-per-prompt orchestration.

A request is validated, priced and paid for before the AI is called. The
payment is either simulated against the off-chain credit ledger or, when the
caller supplies a signing key, checked against and settled on the Stellar
ledger. Both paths produce a :data:`PaymentOutcome` consumed by the shared
AI, settlement and usage-logging stages.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stellar_gateway.core.errors import (
    AIServiceUnavailableError,
    InsufficientBalanceError,
    InvalidInputError,
    KeyMismatchError,
    LedgerError,
)
from stellar_gateway.core.settings import settings
from stellar_gateway.models import Message, User
from stellar_gateway.services.ai import AIService, GenerationResult
from stellar_gateway.services.conversations import ConversationService, ExchangeRecord
from stellar_gateway.services.credits import CreditsService
from stellar_gateway.services.crypto import CryptoService
from stellar_gateway.services.ledger import LedgerClient
from stellar_gateway.services.pricing import CostEstimate, PricingService
from stellar_gateway.services.usage import (
    UsageEntry,
    UsageLedger,
    generate_placeholder_reference,
    hash_prompt,
)
from stellar_gateway.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SimulatedPayment:
    """Cost debited from the off-chain credit ledger."""

    wallet_address: str
    cost: Decimal
    asset: str
    balance_after: Decimal

    mode = "simulated"


@dataclass(frozen=True)
class LedgerPayment:
    """Cost covered by a Stellar account; settled after the AI answers."""

    wallet_address: str
    source_address: str
    secret_key: str
    cost: Decimal
    asset: str
    ledger_balance: Decimal

    mode = "ledger"

    @property
    def balance_after(self) -> Decimal:
        # Not re-queried after settlement.
        return self.ledger_balance - self.cost

    def __repr__(self) -> str:
        return (
            f"LedgerPayment(wallet_address={self.wallet_address!r}, "
            f"cost={self.cost!r}, secret_key='{CryptoService.mask(self.secret_key)}')"
        )


PaymentOutcome = SimulatedPayment | LedgerPayment


@dataclass(frozen=True)
class Settlement:
    """Transaction reference recorded for a paid request."""

    tx_hash: str
    placeholder: bool
    error: str | None = None


@dataclass(frozen=True)
class CompletionResult:
    """Everything returned to the caller for a paid completion."""

    response: str
    estimate: CostEstimate
    payment: PaymentOutcome
    settlement: Settlement
    execution_time_ms: int
    prompt_hash: str
    provider: str
    usage_log_id: int | None = None

    def as_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "response": self.response,
            "cost": float(self.estimate.cost),
            "tokens": self.estimate.tokens,
            "tier": self.estimate.tier,
            "balanceAfter": float(self.payment.balance_after),
            "executionTime": self.execution_time_ms,
            "promptHash": self.prompt_hash,
            "txHash": self.settlement.tx_hash,
            "paymentMode": self.payment.mode,
            "provider": self.provider,
            "usageLogId": self.usage_log_id,
        }
        if self.settlement.error:
            body["settlementError"] = self.settlement.error
        return body


@dataclass(frozen=True)
class ConversationExchange:
    """A completion together with the two persisted messages."""

    completion: CompletionResult
    user_message: Message
    assistant_message: Message


class PaymentOrchestrator:
    """Runs one paid AI request from validation to response."""

    def __init__(
        self,
        db: Session,
        *,
        ai: AIService,
        ledger: LedgerClient,
        pricing: PricingService | None = None,
        max_prompt_length: int | None = None,
    ) -> None:
        self.db = db
        self.ai = ai
        self.ledger = ledger
        self.pricing = pricing or PricingService()
        self.credits = CreditsService(db, asset=self.pricing.asset)
        self.usage = UsageLedger(db)
        self.max_prompt_length = (
            max_prompt_length if max_prompt_length is not None else settings.max_prompt_length
        )

    def validate(self, wallet_address: str | None, prompt: str | None) -> tuple[str, str]:
        """Check the request before any side effect.

        Returns:
            Tuple of (wallet_address, prompt). The prompt is returned as
            given; only the provider sees it trimmed.
        """
        if not wallet_address or prompt is None or prompt == "":
            raise InvalidInputError(
                "MISSING_REQUIRED_FIELDS",
                "Wallet address and prompt are required",
            )
        if not CryptoService.is_valid_address(wallet_address):
            raise InvalidInputError("INVALID_STELLAR_ADDRESS", "Invalid Stellar address")
        if not prompt.strip():
            raise InvalidInputError("INVALID_PROMPT", "Prompt must be a non-empty string")
        if len(prompt) > self.max_prompt_length:
            raise InvalidInputError(
                "PROMPT_TOO_LONG",
                f"Prompt too long (maximum {self.max_prompt_length} characters)",
            )
        return wallet_address.strip(), prompt

    async def _pay(
        self,
        user: User,
        estimate: CostEstimate,
        secret_key: str | None,
    ) -> PaymentOutcome:
        if secret_key and secret_key.strip():
            key = secret_key.strip()
            signer = CryptoService.derive_address(key)
            if signer != user.wallet_address:
                raise KeyMismatchError(expected=user.wallet_address, actual=signer)
            account = await self.ledger.get_real_balance(key)
            available = account.native_balance
            if available < estimate.cost:
                raise InsufficientBalanceError(
                    required=estimate.cost,
                    current=available,
                    source="ledger",
                )
            return LedgerPayment(
                wallet_address=user.wallet_address,
                source_address=user.wallet_address,
                secret_key=key,
                cost=estimate.cost,
                asset=self.pricing.asset,
                ledger_balance=available,
            )

        change = self.credits.debit(user.wallet_address, estimate.cost, self.pricing.asset)
        return SimulatedPayment(
            wallet_address=user.wallet_address,
            cost=estimate.cost,
            asset=change.asset,
            balance_after=change.balance,
        )

    def _refund(self, payment: PaymentOutcome) -> None:
        if not isinstance(payment, SimulatedPayment):
            return
        try:
            self.credits.credit(payment.wallet_address, payment.cost, payment.asset)
        except SQLAlchemyError:
            logger.exception(
                "Refund of %s %s to %s failed",
                payment.cost,
                payment.asset,
                payment.wallet_address,
            )
            raise
        logger.info("Refunded %s %s to %s", payment.cost, payment.asset, payment.wallet_address)

    async def _settle(self, payment: PaymentOutcome) -> Settlement:
        if isinstance(payment, SimulatedPayment):
            return Settlement(tx_hash=generate_placeholder_reference(), placeholder=True)

        try:
            unsigned = await self.ledger.build_payment_transaction(
                payment.source_address, payment.cost
            )
            submitted = await self.ledger.sign_and_submit(unsigned.xdr, payment.secret_key)
        except LedgerError as exc:
            placeholder = generate_placeholder_reference()
            logger.warning(
                "Settlement for %s failed (%s: %s); recording %s",
                payment.wallet_address,
                exc.code,
                exc.message,
                placeholder,
            )
            return Settlement(tx_hash=placeholder, placeholder=True, error=exc.code)
        return Settlement(tx_hash=submitted.tx_hash, placeholder=False)

    def _log_usage(
        self,
        user: User,
        prompt: str,
        generation: GenerationResult,
        estimate: CostEstimate,
        settlement: Settlement,
        execution_time_ms: int,
    ) -> int | None:
        try:
            record = self.usage.append(
                user.id,
                UsageEntry(
                    prompt=prompt,
                    response=generation.text,
                    tokens=estimate.tokens,
                    cost=estimate.cost,
                    asset=self.pricing.asset,
                    tier=estimate.tier,
                    tx_hash=settlement.tx_hash,
                    execution_time_ms=execution_time_ms,
                ),
            )
        except Exception:
            # Usage logging never fails a paid completion.
            self.db.rollback()
            logger.error("Failed to record usage for %s", user.wallet_address, exc_info=True)
            return None
        return record.id

    async def _run(
        self,
        user: User,
        prompt: str,
        secret_key: str | None,
        started: float,
    ) -> tuple[CompletionResult, GenerationResult]:
        estimate = self.pricing.estimate_cost(prompt)
        payment = await self._pay(user, estimate, secret_key)

        try:
            generation = await self.ai.generate(prompt.strip())
        except AIServiceUnavailableError:
            self._refund(payment)
            raise

        settlement = await self._settle(payment)
        execution_time_ms = int((time.perf_counter() - started) * 1000)
        usage_log_id = self._log_usage(
            user, prompt, generation, estimate, settlement, execution_time_ms
        )
        result = CompletionResult(
            response=generation.text,
            estimate=estimate,
            payment=payment,
            settlement=settlement,
            execution_time_ms=execution_time_ms,
            prompt_hash=hash_prompt(prompt),
            provider=generation.provider,
            usage_log_id=usage_log_id,
        )
        return result, generation

    async def complete(
        self,
        wallet_address: str | None,
        prompt: str | None,
        secret_key: str | None = None,
    ) -> CompletionResult:
        """Charge for ``prompt`` and return the AI answer.

        Raises:
            InvalidInputError: The request is malformed; nothing changed.
            InsufficientBalanceError: The paying balance cannot cover the cost.
            AIServiceUnavailableError: No provider answered; any simulated
                debit has been refunded.
        """
        started = time.perf_counter()
        wallet_address, prompt = self.validate(wallet_address, prompt)
        user, _ = get_or_create_user(self.db, wallet_address)
        result, _ = await self._run(user, prompt, secret_key, started)
        logger.info(
            "Completion for %s: %s tier, %s %s, tx %s",
            wallet_address,
            result.estimate.tier,
            result.estimate.cost,
            self.pricing.asset,
            result.settlement.tx_hash,
        )
        return result

    async def complete_in_conversation(
        self,
        conversation_id: int,
        wallet_address: str | None,
        message: str | None,
        secret_key: str | None = None,
    ) -> ConversationExchange:
        """Run :meth:`complete` inside an owned conversation."""
        started = time.perf_counter()
        wallet_address, message = self.validate(wallet_address, message)
        user, _ = get_or_create_user(self.db, wallet_address)
        conversations = ConversationService(self.db)
        conversation = conversations.get_owned(conversation_id, user.id)

        result, generation = await self._run(user, message, secret_key, started)
        user_message, assistant_message = conversations.record_exchange(
            conversation,
            ExchangeRecord(
                prompt=message.strip(),
                answer=generation.text,
                tokens=result.estimate.tokens,
                cost=result.estimate.cost,
                asset=self.pricing.asset,
                tx_hash=result.settlement.tx_hash,
                execution_time_ms=generation.execution_time_ms,
            ),
        )
        return ConversationExchange(
            completion=result,
            user_message=user_message,
            assistant_message=assistant_message,
        )
