# src/stellar_gateway/services/__init__.py
"""Business logic services for the Stellar AI gateway."""

from .ai import AIService
from .conversations import ConversationService
from .credits import CreditsService
from .crypto import CryptoService
from .ledger import LedgerClient
from .payment import PaymentOrchestrator
from .pricing import PricingService
from .usage import UsageLedger

__all__ = [
    "AIService",
    "ConversationService",
    "CreditsService",
    "CryptoService",
    "LedgerClient",
    "PaymentOrchestrator",
    "PricingService",
    "UsageLedger",
]
