"""Conversation endpoints with paid chat messages."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Query
from sqlalchemy.orm import Session

from stellar_gateway.core.errors import ConversationNotFoundError
from stellar_gateway.models import Conversation, Message, User
from stellar_gateway.schemas.common import Pagination
from stellar_gateway.schemas.conversation import ChatMessageRequest, ConversationCreate
from stellar_gateway.services.conversations import ConversationService
from stellar_gateway.services.user_service import (
    get_or_create_user,
    get_user_by_wallet,
    require_address,
    require_user,
)

from ..dependencies import OrchestratorDep, SessionDep

router = APIRouter(prefix="/conversations", tags=["conversations"])

MAX_PAGE_SIZE = 100


def _owner(db: Session, wallet_address: str, conversation_id: int) -> User:
    # Unknown wallets cannot own anything; answer as for a foreign conversation.
    user = get_user_by_wallet(db, wallet_address)
    if user is None:
        raise ConversationNotFoundError(conversation_id)
    return user


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _serialize_conversation(
    conversation: Conversation,
    message_count: int = 0,
    last_message: str | None = None,
) -> dict[str, Any]:
    return {
        "id": conversation.id,
        "title": conversation.title or f"Conversation {conversation.id}",
        "messageCount": message_count,
        "lastMessage": last_message,
        "lastMessageAt": _iso(conversation.last_message_at),
        "createdAt": _iso(conversation.created_at),
        "updatedAt": _iso(conversation.updated_at),
    }


def _serialize_message(message: Message) -> dict[str, Any]:
    """Serialize a Message instance into API payload form."""
    return {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "tokens": message.tokens or 0,
        "cost": {
            "amount": float(message.cost_amount or 0),
            "asset": message.cost_asset or "XLM",
        },
        "txHash": message.tx_hash,
        "executionTime": message.execution_time,
        "createdAt": _iso(message.created_at),
    }


@router.get("")
async def list_conversations(
    db: SessionDep,
    wallet_address: str | None = Query(None, alias="walletAddress"),
    limit: int = Query(20, ge=1),
    offset: int = Query(0),
) -> dict[str, Any]:
    """List the wallet's conversations by most recent activity."""
    wallet_address = require_address(wallet_address)
    limit = min(limit, MAX_PAGE_SIZE)
    offset = max(offset, 0)
    user = require_user(db, wallet_address)
    summaries = ConversationService(db).list_for_user(user.id, limit=limit, offset=offset)
    return {
        "conversations": [
            _serialize_conversation(s.conversation, s.message_count, s.last_message)
            for s in summaries
        ],
        "pagination": Pagination(
            limit=limit, offset=offset, total=len(summaries), has_more=len(summaries) == limit
        ).model_dump(by_alias=True),
    }


@router.post("")
async def create_conversation(request: ConversationCreate, db: SessionDep) -> dict[str, Any]:
    """Open a new conversation, registering the wallet if needed."""
    wallet_address = require_address(request.wallet_address)
    user, _ = get_or_create_user(db, wallet_address)
    conversation = ConversationService(db).create(user.id, request.title)
    return {
        "conversation": _serialize_conversation(conversation),
        "message": "Conversation created",
    }


@router.get("/{conversation_id}/messages")
async def get_messages(
    conversation_id: int,
    db: SessionDep,
    wallet_address: str | None = Query(None, alias="walletAddress"),
) -> dict[str, Any]:
    """Return the messages of an owned conversation."""
    wallet_address = require_address(wallet_address)
    user = _owner(db, wallet_address, conversation_id)
    service = ConversationService(db)
    conversation = service.get_owned(conversation_id, user.id)
    messages = service.messages(conversation_id, user.id)
    return {
        "conversation": _serialize_conversation(
            conversation,
            len(messages),
            messages[-1].content[:100] if messages else None,
        ),
        "messages": [_serialize_message(message) for message in messages],
    }


@router.post("/{conversation_id}/messages")
async def post_message(
    conversation_id: int,
    request: ChatMessageRequest,
    orchestrator: OrchestratorDep,
) -> dict[str, Any]:
    """Send a paid message and store both sides of the exchange."""
    exchange = await orchestrator.complete_in_conversation(
        conversation_id,
        request.wallet_address,
        request.message,
        request.secret_key,
    )
    completion = exchange.completion
    body = completion.as_dict()
    body["messages"] = [
        _serialize_message(exchange.user_message),
        _serialize_message(exchange.assistant_message),
    ]
    body["timestamp"] = datetime.now(UTC).isoformat()
    return body


@router.delete("/{conversation_id}")
async def delete_conversation(
    conversation_id: int,
    db: SessionDep,
    wallet_address: str | None = Query(None, alias="walletAddress"),
) -> dict[str, Any]:
    """Delete an owned conversation and its messages."""
    wallet_address = require_address(wallet_address)
    user = _owner(db, wallet_address, conversation_id)
    ConversationService(db).delete(conversation_id, user.id)
    return {"success": True, "message": "Conversation deleted"}
