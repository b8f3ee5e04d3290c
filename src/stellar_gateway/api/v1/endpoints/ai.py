"""Paid AI completion endpoints."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter

from stellar_gateway.schemas.ai import AITestRequest, CompletionRequest

from ..dependencies import AIServiceDep, OrchestratorDep

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/completions")
async def create_completion(
    request: CompletionRequest,
    orchestrator: OrchestratorDep,
) -> dict[str, Any]:
    """Charge for a prompt and return the AI answer.

    Omitting ``secretKey`` pays from the off-chain credit balance; supplying
    it checks the Stellar account balance and settles on the ledger.
    """
    result = await orchestrator.complete(
        request.wallet_address,
        request.prompt,
        request.secret_key,
    )
    body = result.as_dict()
    body["timestamp"] = datetime.now(UTC).isoformat()
    return body


@router.get("/status")
async def get_ai_status(ai: AIServiceDep) -> dict[str, Any]:
    """Report which provider would answer and the provider configuration."""
    availability = await ai.check_availability()
    return {
        "available": availability.available,
        "provider": availability.provider,
        "status": availability.detail,
        "config": ai.describe(),
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.post("/test")
async def test_ai(ai: AIServiceDep, request: AITestRequest | None = None) -> dict[str, Any]:
    """Run an unpaid round-trip through the provider chain."""
    prompt = request.prompt if request is not None else AITestRequest().prompt
    result = await ai.generate(prompt)
    return {
        "success": True,
        "provider": result.provider,
        "response": result.text,
        "executionTime": result.execution_time_ms,
    }
