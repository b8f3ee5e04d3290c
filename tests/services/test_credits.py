"""Tests for the off-chain credit ledger."""

from decimal import Decimal

import pytest
from sqlalchemy import select

from stellar_gateway.core.errors import InsufficientBalanceError, InvalidInputError, UserNotFoundError
from stellar_gateway.models import Balance, User
from stellar_gateway.services.credits import CreditsService
from stellar_gateway.services.usage import UsageEntry, UsageLedger


def test_unknown_wallet_has_zero_balance(db_session, other_wallet) -> None:
    assert CreditsService(db_session).get_balance(other_wallet) == Decimal("0")


def test_debit_decrements_balance(db_session, test_user) -> None:
    credits = CreditsService(db_session)

    change = credits.debit(test_user.wallet_address, Decimal("0.02"))

    assert change.balance == Decimal("4.98")
    assert change.delta == Decimal("-0.02")
    assert credits.get_balance(test_user.wallet_address) == Decimal("4.98")


def test_insufficient_debit_leaves_balance_unchanged(db_session, test_user) -> None:
    credits = CreditsService(db_session)

    with pytest.raises(InsufficientBalanceError) as exc_info:
        credits.debit(test_user.wallet_address, Decimal("5.01"))

    error = exc_info.value
    assert error.status_code == 402
    assert error.required == Decimal("5.01")
    assert error.current == Decimal("5")
    assert error.deficit == Decimal("0.01")
    assert error.payload()["source"] == "off-chain"
    assert credits.get_balance(test_user.wallet_address) == Decimal("5")


def test_credit_then_debit_restores_exact_balance(db_session, test_user) -> None:
    credits = CreditsService(db_session)
    before = credits.get_balance(test_user.wallet_address)

    for amount in (Decimal("0.02"), Decimal("0.05"), Decimal("0.0000001"), Decimal("3.3333333")):
        credited = credits.credit(test_user.wallet_address, amount)
        debited = credits.debit(test_user.wallet_address, credited.balance - before)
        assert debited.balance == before

    assert credits.get_balance(test_user.wallet_address) == before


def test_repeated_small_debits_do_not_drift(db_session, test_user) -> None:
    credits = CreditsService(db_session)
    for _ in range(50):
        credits.debit(test_user.wallet_address, Decimal("0.02"))
    assert credits.get_balance(test_user.wallet_address) == Decimal("4.00")


def test_credit_creates_missing_balance_row(db_session, other_wallet) -> None:
    user = User(wallet_address=other_wallet)
    db_session.add(user)
    db_session.commit()

    change = CreditsService(db_session).credit(other_wallet, Decimal("2.5"))

    assert change.balance == Decimal("2.5")
    rows = db_session.scalars(select(Balance).where(Balance.user_id == user.id)).all()
    assert len(rows) == 1


def test_balances_are_scoped_per_asset(db_session, test_user) -> None:
    credits = CreditsService(db_session)
    credits.credit(test_user.wallet_address, Decimal("7"), asset="USDC")

    assert credits.get_balance(test_user.wallet_address, "USDC") == Decimal("7")
    assert credits.get_balance(test_user.wallet_address) == Decimal("5")


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
def test_non_positive_amounts_are_rejected(db_session, test_user, amount) -> None:
    credits = CreditsService(db_session)
    with pytest.raises(InvalidInputError) as exc_info:
        credits.debit(test_user.wallet_address, amount)
    assert exc_info.value.code == "INVALID_AMOUNT"
    with pytest.raises(InvalidInputError):
        credits.credit(test_user.wallet_address, amount)


def test_mutating_unknown_wallet_raises(db_session, other_wallet) -> None:
    with pytest.raises(UserNotFoundError):
        CreditsService(db_session).debit(other_wallet, Decimal("1"))


def test_check_sufficient_is_read_only(db_session, test_user) -> None:
    credits = CreditsService(db_session)

    check = credits.check_sufficient(test_user.wallet_address, Decimal("6"))

    assert check.sufficient is False
    assert check.deficit == Decimal("1")
    assert credits.get_balance(test_user.wallet_address) == Decimal("5")


def test_usage_stats_aggregate_recent_records(db_session, test_user) -> None:
    ledger = UsageLedger(db_session)
    for cost, elapsed in ((Decimal("0.02"), 100), (Decimal("0.05"), 300)):
        ledger.append(
            test_user.id,
            UsageEntry(
                prompt="hello",
                response="world",
                tokens=2,
                cost=cost,
                asset="XLM",
                tier="short",
                tx_hash=None,
                execution_time_ms=elapsed,
            ),
        )

    stats = CreditsService(db_session).usage_stats(test_user.wallet_address)

    assert stats.total_requests == 2
    assert stats.total_cost == Decimal("0.07")
    assert stats.avg_execution_time == pytest.approx(200.0)
    assert stats.period_days == 30


def test_debit_after_concurrent_spend_is_refused(db_session, store, test_user) -> None:
    credits = CreditsService(db_session)
    assert credits.check_sufficient(test_user.wallet_address, Decimal("3")).sufficient

    other = store.new_session()
    try:
        CreditsService(other).debit(test_user.wallet_address, Decimal("3"))
    finally:
        other.close()

    with pytest.raises(InsufficientBalanceError) as exc_info:
        credits.debit(test_user.wallet_address, Decimal("3"))

    assert exc_info.value.current == Decimal("2")
    assert credits.get_balance(test_user.wallet_address) == Decimal("2")


def test_debit_does_not_trust_a_stale_read(db_session, test_user, mocker) -> None:
    credits = CreditsService(db_session)
    mocker.patch.object(CreditsService, "_read_amount", return_value=Decimal("100"))

    with pytest.raises(InsufficientBalanceError):
        credits.debit(test_user.wallet_address, Decimal("6"))

    stored = db_session.scalar(select(Balance.amount).where(Balance.user_id == test_user.id))
    assert stored == Decimal("5")
