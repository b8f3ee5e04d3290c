"""Conversation and message schemas."""
from __future__ import annotations

from .common import CamelModel


class ConversationCreate(CamelModel):
    """Body of ``POST /conversations``."""

    wallet_address: str | None = None
    title: str | None = None


class ChatMessageRequest(CamelModel):
    """Body of ``POST /conversations/{id}/messages``."""

    wallet_address: str | None = None
    message: str | None = None
    secret_key: str | None = None
