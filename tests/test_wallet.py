from decimal import Decimal

import pytest

from ride_core.core.exceptions import (
    InsufficientBalanceException,
    InvalidAmountException,
)
from ride_shared.db.enums import TransactionStatus, TransactionType
from ride_shared.db.models import Transaction
from ride_shared.db.repositories import WalletRepository


def test_unknown_rider_has_zero_balance(wallet_ledger):
    assert wallet_ledger.balance("nobody") == Decimal("0.00")
    assert wallet_ledger.reconcile("nobody") == (Decimal("0.00"), Decimal("0.00"), True)


def test_deposit_creates_wallet_and_transaction(db_session, wallet_ledger):
    balance = wallet_ledger.deposit("rider-1", Decimal("25.50"), "MOMO")
    db_session.commit()

    assert balance == Decimal("25.50")
    items, total = wallet_ledger.history("rider-1")
    assert total == 1
    tx = items[0]
    assert tx.type == TransactionType.DEPOSIT
    assert tx.status == TransactionStatus.COMPLETED
    assert tx.total_amount == Decimal("25.50")
    assert tx.payment_method == "MOMO"
    assert tx.meta["reason"] == "top-up"


def test_debit_appends_payment(db_session, wallet_ledger, fund):
    fund("rider-1", 20)

    balance = wallet_ledger.debit("rider-1", Decimal("7.25"), metadata={"ride_id": "r1"})
    db_session.commit()

    assert balance == Decimal("12.75")
    assert wallet_ledger.balance("rider-1") == Decimal("12.75")
    payment = db_session.query(Transaction).filter_by(type=TransactionType.RIDE_PAYMENT).one()
    assert payment.amount == Decimal("7.25")
    assert payment.meta == {"ride_id": "r1"}


def test_debit_refuses_overdraft(db_session, wallet_ledger, fund):
    fund("rider-1", 10)

    with pytest.raises(InsufficientBalanceException):
        wallet_ledger.debit("rider-1", Decimal("10.01"))
    db_session.rollback()

    assert wallet_ledger.balance("rider-1") == Decimal("10.00")
    _, total = wallet_ledger.history("rider-1")
    assert total == 1


def test_debit_of_missing_wallet_is_insufficient(wallet_ledger):
    with pytest.raises(InsufficientBalanceException):
        wallet_ledger.debit("nobody", Decimal("1"))


def test_debit_exact_balance_leaves_zero(db_session, wallet_ledger, fund):
    fund("rider-1", 11)
    assert wallet_ledger.debit("rider-1", Decimal("11.00")) == Decimal("0.00")


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-3")])
def test_non_positive_amounts_are_rejected(wallet_ledger, amount):
    with pytest.raises(InvalidAmountException):
        wallet_ledger.credit("rider-1", amount, reason="promo")
    with pytest.raises(InvalidAmountException):
        wallet_ledger.debit("rider-1", amount)


def test_zero_debit_only_when_allowed(db_session, wallet_ledger, fund):
    fund("rider-1", 5)

    assert wallet_ledger.debit("rider-1", Decimal("0"), allow_zero=True) == Decimal("5.00")
    db_session.commit()

    [payment] = db_session.query(Transaction).filter_by(type=TransactionType.RIDE_PAYMENT).all()
    assert payment.total_amount == Decimal("0.00")
    assert payment.status == TransactionStatus.COMPLETED


def test_debit_rejects_credit_type(wallet_ledger, fund):
    fund("rider-1", 10)
    with pytest.raises(ValueError):
        wallet_ledger.debit("rider-1", Decimal("1"), tx_type=TransactionType.REFUND)


def test_fees_move_balance_by_total_amount(db_session, wallet_ledger, fund):
    fund("rider-1", 50)

    wallet_ledger.withdraw("rider-1", Decimal("20"), fees=Decimal("1.50"), payment_method="MOBILE_MONEY")
    wallet_ledger.credit(
        "rider-1",
        Decimal("10"),
        reason="card top-up",
        tx_type=TransactionType.DEPOSIT,
        fees=Decimal("0.30"),
    )
    db_session.commit()

    assert wallet_ledger.balance("rider-1") == Decimal("38.20")
    withdrawal = db_session.query(Transaction).filter_by(type=TransactionType.WITHDRAWAL).one()
    assert withdrawal.total_amount == Decimal("21.50")
    assert withdrawal.payment_method == "MOBILE_MONEY"
    balance, ledger, consistent = wallet_ledger.reconcile("rider-1")
    assert ledger == balance
    assert consistent


def test_refund_tags_ride(db_session, wallet_ledger):
    wallet_ledger.refund("rider-1", Decimal("3"), reason="bike fault", ride_id="ride-9")
    db_session.commit()

    items, _ = wallet_ledger.history("rider-1")
    assert items[0].type == TransactionType.REFUND
    assert items[0].meta == {"ride_id": "ride-9", "reason": "bike fault"}


def test_reconcile_detects_drift(db_session, wallet_ledger, fund):
    fund("rider-1", 30)
    wallet_ledger.debit("rider-1", Decimal("12"))
    db_session.commit()
    assert wallet_ledger.reconcile("rider-1")[2]

    wallet = WalletRepository(db_session).get_by_rider("rider-1")
    wallet.balance = Decimal("99.00")
    db_session.commit()

    balance, ledger, consistent = wallet_ledger.reconcile("rider-1")
    assert balance == Decimal("99.00")
    assert ledger == Decimal("18.00")
    assert not consistent


def test_history_is_paginated(db_session, wallet_ledger):
    for amount in (1, 2, 3):
        wallet_ledger.deposit("rider-1", Decimal(amount))
    db_session.commit()

    page, total = wallet_ledger.history("rider-1", page=1, limit=2)

    assert total == 3
    assert len(page) == 2
