"""Ledger client for Gateway ↔ Stellar Horizon integration.

This module provides the LedgerClient class that handles all communication
between the gateway and the Stellar network. It includes:

- Async HTTP client for the Horizon REST API with per-call timeouts
- Balance and account-existence queries
- Construction of unsigned settlement payments
- Signing and submission of transaction envelopes
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any

import httpx
from stellar_sdk import Account, Asset, Network, TransactionBuilder, TransactionEnvelope

from stellar_gateway.core.errors import (
    AccountNotFoundError,
    InsufficientReserveError,
    InvalidInputError,
    KeyMismatchError,
    LedgerNetworkError,
    SubmissionRejectedError,
)
from stellar_gateway.core.settings import settings
from stellar_gateway.services.crypto import CryptoService
from stellar_gateway.services.pricing import MIN_LEDGER_AMOUNT

# Configure logger for this module
logger = logging.getLogger(__name__)

# HTTP status codes
HTTP_OK = 200
HTTP_BAD_REQUEST = 400
HTTP_NOT_FOUND = 404

NATIVE_ASSET = "XLM"
MEMO_MAX_BYTES = 28


@dataclass(frozen=True)
class LedgerConfig:
    """Immutable configuration for Horizon access."""

    network: str
    horizon_url: str
    network_passphrase: str
    timeout_seconds: float
    base_fee: int
    tx_timeout_seconds: int
    min_tx_balance: Decimal
    settlement_destination: str | None


@dataclass(frozen=True)
class LedgerBalance:
    """One balance line of a Stellar account."""

    asset: str
    amount: Decimal
    limit: Decimal | None = None
    asset_type: str = "native"


@dataclass(frozen=True)
class AccountState:
    """Snapshot of an account as loaded from Horizon."""

    account_id: str
    sequence: int
    balances: list[LedgerBalance]
    subentry_count: int = 0
    thresholds: dict[str, int] = field(default_factory=dict)

    @property
    def native_balance(self) -> Decimal:
        for balance in self.balances:
            if balance.asset_type == "native":
                return balance.amount
        return Decimal("0")


@dataclass(frozen=True)
class UnsignedTransaction:
    """A built but unsigned settlement payment."""

    xdr: str
    source: str
    destination: str
    amount: str
    memo: str
    fee_stroops: int
    timeout_seconds: int


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of a successful submission."""

    tx_hash: str
    ledger: int | None
    success: bool = True


@dataclass(frozen=True)
class AccountProbe:
    """Best-effort existence check; never raises for missing accounts."""

    exists: bool
    balance: Decimal | None = None
    sequence: int | None = None
    reason: str | None = None


def load_ledger_config() -> LedgerConfig:
    """Build configuration object from global settings."""

    passphrase = (
        Network.TESTNET_NETWORK_PASSPHRASE
        if settings.is_testnet
        else Network.PUBLIC_NETWORK_PASSPHRASE
    )
    return LedgerConfig(
        network=settings.stellar_network,
        horizon_url=settings.stellar_horizon_url.rstrip("/"),
        network_passphrase=passphrase,
        timeout_seconds=float(settings.stellar_http_timeout_seconds),
        base_fee=settings.stellar_base_fee,
        tx_timeout_seconds=settings.stellar_tx_timeout_seconds,
        min_tx_balance=settings.stellar_min_tx_balance,
        settlement_destination=settings.stellar_settlement_destination,
    )


def format_ledger_amount(amount: Decimal) -> str:
    """Render ``amount`` with seven decimals, clamped to one stroop."""
    if amount < MIN_LEDGER_AMOUNT:
        return str(MIN_LEDGER_AMOUNT.quantize(MIN_LEDGER_AMOUNT))
    return str(amount.quantize(MIN_LEDGER_AMOUNT, rounding=ROUND_DOWN))


def _parse_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _parse_balance(raw: dict[str, Any]) -> LedgerBalance:
    asset_type = raw.get("asset_type", "native")
    if asset_type == "native":
        asset = NATIVE_ASSET
    else:
        asset = f"{raw.get('asset_code')}:{raw.get('asset_issuer')}"
    return LedgerBalance(
        asset=asset,
        amount=_parse_decimal(raw.get("balance")) or Decimal("0"),
        limit=_parse_decimal(raw.get("limit")),
        asset_type=asset_type,
    )


class LedgerClient:
    """HTTP client wrapper for Stellar Horizon interactions."""

    def __init__(
        self,
        config: LedgerConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or load_ledger_config()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    base_url=self.config.horizon_url,
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                    transport=self._transport,
                    headers={"Accept": "application/json"},
                )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> httpx.Response:
        client = await self._ensure_client()
        try:
            return await client.request(method, path, params=params, data=data)
        except httpx.TimeoutException as exc:
            raise LedgerNetworkError(f"Horizon request timed out: {method} {path}") from exc
        except httpx.HTTPError as exc:
            raise LedgerNetworkError(f"Horizon request failed: {exc}") from exc

    @staticmethod
    def _json_body(response: httpx.Response, action: str) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise LedgerNetworkError(
                f"Malformed Horizon response ({response.status_code}) {action}"
            ) from exc
        if not isinstance(body, dict):
            raise LedgerNetworkError(
                f"Malformed Horizon response ({response.status_code}) {action}"
            )
        return body

    @staticmethod
    def _require_address(address: str) -> str:
        if not CryptoService.is_valid_address(address):
            raise InvalidInputError("INVALID_STELLAR_ADDRESS", "Invalid Stellar address")
        return address.strip()

    async def load_account(self, address: str) -> AccountState:
        """Load sequence number and balances for ``address``.

        Raises:
            AccountNotFoundError: The account has never been funded.
            LedgerNetworkError: Horizon failed or answered unexpectedly.
        """
        account_id = self._require_address(address)
        response = await self._request("GET", f"/accounts/{account_id}")

        if response.status_code == HTTP_NOT_FOUND:
            raise AccountNotFoundError(account_id)
        if response.status_code != HTTP_OK:
            raise LedgerNetworkError(
                f"Unexpected Horizon response ({response.status_code}) loading account",
            )

        body = self._json_body(response, "loading account")
        try:
            sequence = int(body["sequence"])
        except (KeyError, TypeError, ValueError) as exc:
            raise LedgerNetworkError("Horizon account record has no usable sequence") from exc
        return AccountState(
            account_id=body.get("account_id", account_id),
            sequence=sequence,
            balances=[_parse_balance(raw) for raw in body.get("balances", [])],
            subentry_count=int(body.get("subentry_count", 0)),
            thresholds=dict(body.get("thresholds") or {}),
        )

    async def get_balances(self, address: str) -> list[LedgerBalance]:
        """Return every balance line of an activated account."""
        account = await self.load_account(address)
        return account.balances

    async def get_real_balance(self, secret_key: str) -> AccountState:
        """Load the account controlled by ``secret_key``."""
        address = CryptoService.derive_address(secret_key)
        logger.debug("Loading ledger balance for %s", address)
        return await self.load_account(address)

    async def build_payment_transaction(
        self,
        source_address: str,
        amount: Decimal,
        *,
        destination: str | None = None,
    ) -> UnsignedTransaction:
        """Build an unsigned native payment of ``amount`` from ``source_address``.

        The payee defaults to the configured settlement destination and, when
        that is unset, to the source itself.

        Raises:
            AccountNotFoundError: The source account has never been funded.
            InsufficientReserveError: The source cannot cover a transaction.
        """
        account = await self.load_account(source_address)
        native = account.native_balance
        if native < self.config.min_tx_balance:
            raise InsufficientReserveError(account.account_id, native, self.config.min_tx_balance)

        payee = destination or self.config.settlement_destination or account.account_id
        ledger_amount = format_ledger_amount(amount)
        memo = f"AI Gateway: {ledger_amount}XLM"[:MEMO_MAX_BYTES]

        envelope = (
            TransactionBuilder(
                source_account=Account(account.account_id, account.sequence),
                network_passphrase=self.config.network_passphrase,
                base_fee=self.config.base_fee,
            )
            .append_payment_op(
                destination=payee,
                asset=Asset.native(),
                amount=ledger_amount,
            )
            .add_text_memo(memo)
            .set_timeout(self.config.tx_timeout_seconds)
            .build()
        )

        logger.info(
            "Built settlement payment of %s XLM from %s to %s",
            ledger_amount,
            account.account_id,
            payee,
        )
        return UnsignedTransaction(
            xdr=envelope.to_xdr(),
            source=account.account_id,
            destination=payee,
            amount=ledger_amount,
            memo=memo,
            fee_stroops=self.config.base_fee,
            timeout_seconds=self.config.tx_timeout_seconds,
        )

    async def sign_and_submit(self, transaction_xdr: str, secret_key: str) -> SubmissionResult:
        """Sign ``transaction_xdr`` with ``secret_key`` and submit it.

        Raises:
            InvalidKeyError: The key cannot be decoded.
            KeyMismatchError: The key does not control the source account.
            SubmissionRejectedError: Horizon rejected the transaction.
            LedgerNetworkError: Horizon could not be reached.
        """
        keypair = CryptoService.parse_secret_key(secret_key)
        try:
            envelope = TransactionEnvelope.from_xdr(
                transaction_xdr, self.config.network_passphrase
            )
        except Exception as exc:
            raise InvalidInputError("INVALID_TRANSACTION", "Malformed transaction XDR") from exc

        source = envelope.transaction.source.account_id
        if keypair.public_key != source:
            raise KeyMismatchError(expected=source, actual=keypair.public_key)

        envelope.sign(keypair)
        response = await self._request("POST", "/transactions", data={"tx": envelope.to_xdr()})

        if response.status_code == HTTP_OK:
            body = self._json_body(response, "submitting transaction")
            tx_hash = body.get("hash") or envelope.hash_hex()
            logger.info("Transaction %s accepted in ledger %s", tx_hash, body.get("ledger"))
            return SubmissionResult(tx_hash=tx_hash, ledger=body.get("ledger"))

        if response.status_code == HTTP_BAD_REQUEST:
            body = self._json_body(response, "submitting transaction")
            result_codes = (body.get("extras") or {}).get("result_codes") or {}
            raise SubmissionRejectedError(
                result_codes.get("transaction", "unknown"),
                list(result_codes.get("operations") or []),
            )

        raise LedgerNetworkError(
            f"Unexpected Horizon response ({response.status_code}) submitting transaction",
        )

    async def account_exists(self, address: str) -> AccountProbe:
        """Probe for an activated account without raising for missing ones."""
        if not CryptoService.is_valid_address(address):
            return AccountProbe(exists=False, reason="Invalid address")
        try:
            account = await self.load_account(address)
        except AccountNotFoundError:
            return AccountProbe(
                exists=False,
                reason="Account not found. It must be activated with at least 1 XLM.",
            )
        except LedgerNetworkError as exc:
            return AccountProbe(exists=False, reason=f"Could not verify account: {exc}")
        return AccountProbe(
            exists=True,
            balance=account.native_balance,
            sequence=account.sequence,
        )

    async def network_info(self) -> dict[str, Any]:
        """Return the configured network and its latest closed ledger."""
        response = await self._request(
            "GET", "/ledgers", params={"order": "desc", "limit": 1}
        )
        if response.status_code != HTTP_OK:
            raise LedgerNetworkError(
                f"Unexpected Horizon response ({response.status_code}) fetching ledgers",
            )
        body = self._json_body(response, "fetching ledgers")
        records = (body.get("_embedded") or {}).get("records") or []
        latest = records[0] if records else {}
        return {
            "network": self.config.network,
            "horizonUrl": self.config.horizon_url,
            "latestLedger": {
                "sequence": latest.get("sequence"),
                "hash": latest.get("hash"),
                "timestamp": latest.get("closed_at"),
            },
        }


_ledger_client: LedgerClient | None = None


def get_ledger_client() -> LedgerClient:
    """Return the process-wide ledger client."""
    global _ledger_client
    if _ledger_client is None:
        _ledger_client = LedgerClient()
    return _ledger_client


async def close_ledger_client() -> None:
    global _ledger_client
    if _ledger_client is not None:
        await _ledger_client.close()
        _ledger_client = None
