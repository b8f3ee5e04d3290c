"""Conversation storage scoped to the owning wallet."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stellar_gateway.core.errors import ConversationNotFoundError
from stellar_gateway.db.time import utcnow
from stellar_gateway.models import Conversation, Message
from stellar_gateway.models.conversation import ROLE_ASSISTANT, ROLE_USER

LAST_MESSAGE_PREVIEW_LENGTH = 100


@dataclass(frozen=True)
class ConversationSummary:
    """A conversation row plus derived message statistics."""

    conversation: Conversation
    message_count: int
    last_message: str | None


@dataclass(frozen=True)
class ExchangeRecord:
    """Values persisted for one paid prompt/answer pair."""

    prompt: str
    answer: str
    tokens: int
    cost: Decimal
    asset: str
    tx_hash: str | None
    execution_time_ms: int


class ConversationService:
    """Create, list, read and delete conversations owned by a user."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def create(self, user_id: int, title: str | None = None) -> Conversation:
        conversation = Conversation(user_id=user_id, title=title or None)
        self.db.add(conversation)
        self.db.flush()
        if conversation.title is None:
            conversation.title = f"Conversation {conversation.id}"
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def get_owned(self, conversation_id: int, user_id: int) -> Conversation:
        """Return the conversation if ``user_id`` owns it.

        Raises:
            ConversationNotFoundError: Missing, or owned by another user.
        """
        conversation = self.db.scalar(
            select(Conversation).where(
                Conversation.id == conversation_id,
                Conversation.user_id == user_id,
            )
        )
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    def list_for_user(
        self,
        user_id: int,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ConversationSummary]:
        """Return conversations by most recent activity."""
        message_count = (
            select(func.count(Message.id))
            .where(Message.conversation_id == Conversation.id)
            .correlate(Conversation)
            .scalar_subquery()
        )
        last_message = (
            select(Message.content)
            .where(Message.conversation_id == Conversation.id)
            .order_by(Message.id.desc())
            .limit(1)
            .correlate(Conversation)
            .scalar_subquery()
        )
        rows = self.db.execute(
            select(Conversation, message_count, last_message)
            .where(Conversation.user_id == user_id)
            .order_by(Conversation.last_message_at.desc(), Conversation.id.desc())
            .limit(limit)
            .offset(offset)
        ).all()
        return [
            ConversationSummary(
                conversation=conversation,
                message_count=int(count or 0),
                last_message=last[:LAST_MESSAGE_PREVIEW_LENGTH] if last else None,
            )
            for conversation, count, last in rows
        ]

    def messages(self, conversation_id: int, user_id: int) -> Sequence[Message]:
        """Return the messages of an owned conversation, oldest first."""
        self.get_owned(conversation_id, user_id)
        return self.db.scalars(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.id)
        ).all()

    def record_exchange(
        self,
        conversation: Conversation,
        exchange: ExchangeRecord,
    ) -> tuple[Message, Message]:
        """Persist the user prompt and assistant answer and bump activity."""
        now: datetime = utcnow()
        user_message = Message(
            conversation_id=conversation.id,
            role=ROLE_USER,
            content=exchange.prompt,
            tokens=exchange.tokens,
            cost_amount=exchange.cost,
            cost_asset=exchange.asset,
            tx_hash=exchange.tx_hash,
            created_at=now,
        )
        assistant_message = Message(
            conversation_id=conversation.id,
            role=ROLE_ASSISTANT,
            content=exchange.answer,
            tokens=0,
            cost_amount=Decimal("0"),
            cost_asset=exchange.asset,
            execution_time=exchange.execution_time_ms,
            created_at=now,
        )
        self.db.add_all([user_message, assistant_message])
        conversation.last_message_at = now
        self.db.commit()
        self.db.refresh(user_message)
        self.db.refresh(assistant_message)
        return user_message, assistant_message

    def delete(self, conversation_id: int, user_id: int) -> None:
        """Delete an owned conversation together with its messages."""
        conversation = self.get_owned(conversation_id, user_id)
        self.db.delete(conversation)
        self.db.commit()
