# src/stellar_gateway/models/__init__.py
"""SQLAlchemy models for the Stellar AI gateway."""

from .balance import Balance
from .conversation import Conversation, Message
from .usage import UsageRecord
from .user import User

__all__ = [
    "Balance",
    "Conversation", "Message",
    "UsageRecord",
    "User",
]
