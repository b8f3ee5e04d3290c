# src/stellar_gateway/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .ai import router as ai_router
from .auth import router as auth_router
from .conversations import router as conversations_router
from .credits import router as credits_router
from .stellar import router as stellar_router
from .transactions import router as transactions_router
from .usage import router as usage_router

__all__ = [
    "ai_router",
    "auth_router",
    "conversations_router",
    "credits_router",
    "stellar_router",
    "transactions_router",
    "usage_router",
]
