"""Shared API dependencies."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session

from stellar_gateway.db.session import get_db
from stellar_gateway.services.ai import AIService, get_ai_service
from stellar_gateway.services.ledger import LedgerClient, get_ledger_client
from stellar_gateway.services.payment import PaymentOrchestrator
from stellar_gateway.services.pricing import PricingService, get_pricing_service

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_ledger_client_dep() -> LedgerClient:
    """Return the shared Horizon client."""
    return get_ledger_client()


def get_ai_service_dep() -> AIService:
    """Return the shared AI provider chain."""
    return get_ai_service()


def get_pricing_service_dep() -> PricingService:
    return get_pricing_service()


LedgerDep = Annotated[LedgerClient, Depends(get_ledger_client_dep)]
AIServiceDep = Annotated[AIService, Depends(get_ai_service_dep)]
PricingDep = Annotated[PricingService, Depends(get_pricing_service_dep)]


def get_orchestrator(
    db: SessionDep,
    ai: AIServiceDep,
    ledger: LedgerDep,
    pricing: PricingDep,
) -> PaymentOrchestrator:
    """Build a payment orchestrator bound to the request's session."""
    return PaymentOrchestrator(db, ai=ai, ledger=ledger, pricing=pricing)


OrchestratorDep = Annotated[PaymentOrchestrator, Depends(get_orchestrator)]
