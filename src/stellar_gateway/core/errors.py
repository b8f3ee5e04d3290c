"""Error taxonomy shared by the gateway services and the API layer.

Every failure a caller can observe is one of the classes below. Each carries a
stable ``code`` and the HTTP status it maps to, plus whatever structured
payload that failure needs, so the API layer can render errors without
string-matching messages.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class GatewayError(RuntimeError):
    """Base class for all gateway failures."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def payload(self) -> dict[str, Any]:
        """Return extra structured fields rendered next to ``error``/``code``."""
        return {}


class InvalidInputError(GatewayError):
    """Request validation failed; nothing was mutated."""

    status_code = 400

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class InsufficientBalanceError(GatewayError):
    """The paying balance cannot cover the computed cost."""

    code = "INSUFFICIENT_BALANCE"
    status_code = 402

    def __init__(
        self,
        required: Decimal,
        current: Decimal,
        *,
        source: str = "off-chain",
    ) -> None:
        super().__init__("Insufficient balance")
        self.required = required
        self.current = current
        self.deficit = required - current
        self.source = source

    def payload(self) -> dict[str, Any]:
        return {
            "required": float(self.required),
            "current": float(self.current),
            "deficit": float(self.deficit),
            "source": self.source,
        }


class UserNotFoundError(GatewayError):
    """No user is registered for the wallet address."""

    code = "USER_NOT_FOUND"
    status_code = 404

    def __init__(self, wallet_address: str) -> None:
        super().__init__("User not found")
        self.wallet_address = wallet_address


class ConversationNotFoundError(GatewayError):
    """The conversation does not exist or belongs to someone else."""

    code = "CONVERSATION_NOT_FOUND"
    status_code = 404

    def __init__(self, conversation_id: int) -> None:
        super().__init__("Conversation not found")
        self.conversation_id = conversation_id


class UsageLogNotFoundError(GatewayError):
    """The usage record does not exist or belongs to someone else."""

    code = "USAGE_LOG_NOT_FOUND"
    status_code = 404

    def __init__(self, usage_log_id: int) -> None:
        super().__init__("Usage log not found")
        self.usage_log_id = usage_log_id


class AIServiceUnavailableError(GatewayError):
    """Every AI provider, including the offline mock, failed."""

    code = "AI_SERVICE_UNAVAILABLE"
    status_code = 503

    def __init__(self, detail: str) -> None:
        super().__init__("AI service temporarily unavailable")
        self.detail = detail

    def payload(self) -> dict[str, Any]:
        return {"details": self.detail}


class DemoDisabledError(GatewayError):
    """A development-only route was called in production."""

    code = "DEMO_NOT_ALLOWED"
    status_code = 403


class LedgerError(GatewayError):
    """Base class for failures talking to the Stellar network."""

    code = "STELLAR_ERROR"
    status_code = 502


class InvalidKeyError(LedgerError):
    """Secret key material could not be decoded into a keypair."""

    code = "INVALID_SECRET_KEY"
    status_code = 400

    def __init__(self) -> None:
        super().__init__("Invalid secret key")


class AccountNotFoundError(LedgerError):
    """The account has not been activated on the network."""

    code = "ACCOUNT_NOT_FOUND"
    status_code = 404

    def __init__(self, account_id: str) -> None:
        super().__init__(
            "Account not found on the Stellar network. "
            "Make sure the account was activated."
        )
        self.account_id = account_id

    def payload(self) -> dict[str, Any]:
        return {"suggestion": "Activate the account with at least 1 XLM"}


class InsufficientReserveError(LedgerError):
    """The account cannot afford a transaction at the policy floor."""

    code = "INSUFFICIENT_RESERVE"
    status_code = 402

    def __init__(self, account_id: str, balance: Decimal, minimum: Decimal) -> None:
        super().__init__(f"Insufficient balance for a transaction. Minimum: {minimum} XLM")
        self.account_id = account_id
        self.balance = balance
        self.minimum = minimum


class KeyMismatchError(LedgerError):
    """The signing key does not control the transaction source account."""

    code = "KEY_MISMATCH"
    status_code = 400

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__("Secret key does not match the transaction source account")
        self.expected = expected
        self.actual = actual


class SubmissionRejectedError(LedgerError):
    """Horizon rejected the transaction."""

    code = "SUBMISSION_REJECTED"

    def __init__(self, result_code: str, operation_codes: list[str] | None = None) -> None:
        super().__init__(f"Transaction rejected: {result_code}")
        self.result_code = result_code
        self.operation_codes = operation_codes or []

    def payload(self) -> dict[str, Any]:
        return {"resultCode": self.result_code, "operationCodes": self.operation_codes}


class LedgerNetworkError(LedgerError):
    """Horizon could not be reached or answered unexpectedly."""

    code = "NETWORK_ERROR"
