# src/stellar_gateway/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import (
    ai_router,
    auth_router,
    conversations_router,
    credits_router,
    stellar_router,
    transactions_router,
    usage_router,
)

__all__ = [
    "ai_router",
    "auth_router",
    "conversations_router",
    "credits_router",
    "stellar_router",
    "transactions_router",
    "usage_router",
]
