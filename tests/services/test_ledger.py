"""Tests for the Horizon ledger client against an in-memory Horizon."""

from decimal import Decimal

import httpx
import pytest
from stellar_sdk import Keypair, Network, TextMemo, TransactionEnvelope

from stellar_gateway.core.errors import (
    AccountNotFoundError,
    InsufficientReserveError,
    InvalidInputError,
    InvalidKeyError,
    KeyMismatchError,
    LedgerNetworkError,
    SubmissionRejectedError,
)
from stellar_gateway.services.ledger import LedgerClient, format_ledger_amount
from tests.conftest import make_ledger_config


def _decode(xdr: str) -> TransactionEnvelope:
    return TransactionEnvelope.from_xdr(xdr, Network.TESTNET_NETWORK_PASSPHRASE)


@pytest.mark.parametrize(
    ("amount", "expected"),
    [
        (Decimal("0.02"), "0.0200000"),
        (Decimal("0.00000001"), "0.0000001"),
        (Decimal("0"), "0.0000001"),
        (Decimal("1.23456789"), "1.2345678"),
    ],
)
def test_format_ledger_amount(amount: Decimal, expected: str) -> None:
    assert format_ledger_amount(amount) == expected


@pytest.mark.asyncio
async def test_load_account_parses_balances(ledger_client, horizon, wallet) -> None:
    horizon.fund(wallet, balance="42.5000000", sequence=77)

    account = await ledger_client.load_account(wallet)

    assert account.account_id == wallet
    assert account.sequence == 77
    assert account.native_balance == Decimal("42.5")
    balances = await ledger_client.get_balances(wallet)
    assert [b.asset for b in balances] == ["XLM"]


@pytest.mark.asyncio
async def test_unfunded_account_raises_not_found(ledger_client, wallet) -> None:
    with pytest.raises(AccountNotFoundError) as exc_info:
        await ledger_client.load_account(wallet)
    assert exc_info.value.account_id == wallet


@pytest.mark.asyncio
async def test_invalid_address_is_rejected_before_any_request(ledger_client) -> None:
    with pytest.raises(InvalidInputError) as exc_info:
        await ledger_client.load_account("GABC")
    assert exc_info.value.code == "INVALID_STELLAR_ADDRESS"


@pytest.mark.asyncio
async def test_real_balance_derives_address_from_key(ledger_client, horizon, keypair) -> None:
    horizon.fund(keypair.public_key, balance="9.0000000")

    account = await ledger_client.get_real_balance(keypair.secret)

    assert account.account_id == keypair.public_key
    assert account.native_balance == Decimal("9")


@pytest.mark.asyncio
async def test_real_balance_rejects_bad_key(ledger_client) -> None:
    with pytest.raises(InvalidKeyError):
        await ledger_client.get_real_balance("not-a-secret")


@pytest.mark.asyncio
async def test_build_payment_defaults_to_self_payment(ledger_client, horizon, wallet) -> None:
    horizon.fund(wallet, sequence=1000)

    unsigned = await ledger_client.build_payment_transaction(wallet, Decimal("0.02"))

    assert unsigned.source == wallet
    assert unsigned.destination == wallet
    assert unsigned.amount == "0.0200000"
    assert unsigned.fee_stroops == 100

    envelope = _decode(unsigned.xdr)
    transaction = envelope.transaction
    assert transaction.sequence == 1001
    assert len(transaction.operations) == 1
    payment = transaction.operations[0]
    assert payment.destination.account_id == wallet
    assert Decimal(payment.amount) == Decimal("0.02")
    assert isinstance(transaction.memo, TextMemo)
    assert transaction.memo.memo_text.decode() == unsigned.memo
    assert len(unsigned.memo.encode()) <= 28
    assert envelope.signatures == []


@pytest.mark.asyncio
async def test_build_payment_uses_settlement_destination(horizon, wallet, other_wallet) -> None:
    horizon.fund(wallet)
    client = LedgerClient(
        make_ledger_config(settlement_destination=other_wallet),
        transport=httpx.MockTransport(horizon.handler),
    )

    unsigned = await client.build_payment_transaction(wallet, Decimal("0.05"))

    assert unsigned.destination == other_wallet
    assert _decode(unsigned.xdr).transaction.operations[0].destination.account_id == other_wallet


@pytest.mark.asyncio
async def test_build_payment_clamps_tiny_amounts(ledger_client, horizon, wallet) -> None:
    horizon.fund(wallet)

    unsigned = await ledger_client.build_payment_transaction(wallet, Decimal("0"))

    assert unsigned.amount == "0.0000001"


@pytest.mark.asyncio
async def test_build_payment_requires_minimum_balance(ledger_client, horizon, wallet) -> None:
    horizon.fund(wallet, balance="0.0000500")

    with pytest.raises(InsufficientReserveError) as exc_info:
        await ledger_client.build_payment_transaction(wallet, Decimal("0.02"))
    assert exc_info.value.balance == Decimal("0.00005")


@pytest.mark.asyncio
async def test_sign_and_submit_returns_hash(ledger_client, horizon, keypair) -> None:
    horizon.fund(keypair.public_key)
    unsigned = await ledger_client.build_payment_transaction(keypair.public_key, Decimal("0.02"))

    result = await ledger_client.sign_and_submit(unsigned.xdr, keypair.secret)

    assert result.success is True
    assert result.ledger == 4242
    assert len(horizon.submissions) == 1
    submitted = horizon.submissions[0]
    assert result.tx_hash == submitted.hash_hex()
    assert len(submitted.signatures) == 1


@pytest.mark.asyncio
async def test_sign_with_foreign_key_is_refused(ledger_client, horizon, keypair) -> None:
    horizon.fund(keypair.public_key)
    unsigned = await ledger_client.build_payment_transaction(keypair.public_key, Decimal("0.02"))

    with pytest.raises(KeyMismatchError):
        await ledger_client.sign_and_submit(unsigned.xdr, Keypair.random().secret)
    assert horizon.submissions == []


@pytest.mark.asyncio
async def test_rejected_submission_carries_result_codes(ledger_client, horizon, keypair) -> None:
    horizon.fund(keypair.public_key)
    horizon.reject_with = {"transaction": "tx_failed", "operations": ["op_underfunded"]}
    unsigned = await ledger_client.build_payment_transaction(keypair.public_key, Decimal("0.02"))

    with pytest.raises(SubmissionRejectedError) as exc_info:
        await ledger_client.sign_and_submit(unsigned.xdr, keypair.secret)

    assert exc_info.value.result_code == "tx_failed"
    assert exc_info.value.operation_codes == ["op_underfunded"]


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [200, 400])
async def test_unreadable_submission_response_is_a_ledger_error(
    ledger_client, horizon, keypair, status_code
) -> None:
    horizon.fund(keypair.public_key)
    horizon.submit_response = httpx.Response(
        status_code, text="<html>bad gateway</html>", headers={"Content-Type": "text/html"}
    )
    unsigned = await ledger_client.build_payment_transaction(keypair.public_key, Decimal("0.02"))

    with pytest.raises(LedgerNetworkError) as exc_info:
        await ledger_client.sign_and_submit(unsigned.xdr, keypair.secret)
    assert str(status_code) in exc_info.value.message


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="not json"),
        httpx.Response(200, json=["unexpected"]),
        httpx.Response(200, json={"account_id": "GX", "balances": []}),
    ],
)
async def test_unreadable_account_record_is_a_ledger_error(wallet, response) -> None:
    client = LedgerClient(
        make_ledger_config(), transport=httpx.MockTransport(lambda request: response)
    )
    try:
        with pytest.raises(LedgerNetworkError):
            await client.load_account(wallet)
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_malformed_xdr_is_invalid_input(ledger_client, keypair) -> None:
    with pytest.raises(InvalidInputError) as exc_info:
        await ledger_client.sign_and_submit("definitely-not-xdr", keypair.secret)
    assert exc_info.value.code == "INVALID_TRANSACTION"


@pytest.mark.asyncio
async def test_network_failure_is_reported(ledger_client, horizon, wallet) -> None:
    horizon.fail_network = True

    with pytest.raises(LedgerNetworkError):
        await ledger_client.load_account(wallet)


@pytest.mark.asyncio
async def test_account_exists_never_raises(ledger_client, horizon, wallet, other_wallet) -> None:
    horizon.fund(wallet, balance="3.0000000", sequence=12)

    found = await ledger_client.account_exists(wallet)
    missing = await ledger_client.account_exists(other_wallet)
    invalid = await ledger_client.account_exists("nope")

    assert found.exists is True
    assert found.balance == Decimal("3")
    assert found.sequence == 12
    assert missing.exists is False
    assert "activated" in missing.reason
    assert invalid.exists is False
    assert invalid.reason == "Invalid address"

    horizon.fail_network = True
    unreachable = await ledger_client.account_exists(wallet)
    assert unreachable.exists is False
    assert unreachable.reason.startswith("Could not verify account")


@pytest.mark.asyncio
async def test_network_info_reports_latest_ledger(ledger_client) -> None:
    info = await ledger_client.network_info()

    assert info["network"] == "testnet"
    assert info["horizonUrl"] == "https://horizon.test"
    assert info["latestLedger"]["sequence"] == 4242
