# src/stellar_gateway/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

Request bodies use camelCase field names on the wire.
"""

from .ai import AITestRequest, CompletionRequest
from .auth import ProfileUpdate, UserProfile, WalletAuthRequest
from .common import CamelModel, ErrorResponse, Pagination
from .conversation import ChatMessageRequest, ConversationCreate
from .credits import CheckBalanceRequest, EstimateCostRequest, RealBalanceRequest, TopupRequest
from .stellar import DemoPaymentRequest, SignTransactionRequest, ValidateAddressRequest
from .transactions import AssociateTransactionRequest

__all__ = [
    "AITestRequest", "CompletionRequest",
    "ProfileUpdate", "UserProfile", "WalletAuthRequest",
    "CamelModel", "ErrorResponse", "Pagination",
    "ChatMessageRequest", "ConversationCreate",
    "CheckBalanceRequest", "EstimateCostRequest", "RealBalanceRequest", "TopupRequest",
    "DemoPaymentRequest", "SignTransactionRequest", "ValidateAddressRequest",
    "AssociateTransactionRequest",
]
