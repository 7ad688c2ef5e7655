from decimal import Decimal
from typing import List, Optional, Tuple

from loguru import logger

from ride_core.core.exceptions import (
    InsufficientBalanceException,
    InvalidAmountException,
)
from ride_core.core.utils import round2
from ride_core.monitoring.metrics import MetricsCollector
from ride_shared.db.enums import TransactionStatus, TransactionType
from ride_shared.db.models import Transaction, Wallet
from ride_shared.db.repositories.wallet import WalletRepository


class WalletLedger:
    """Wallet balances plus their append-only transaction log.

    Every balance change goes through ``debit`` or ``credit``, which mutate
    the wallet row and append a COMPLETED transaction in the caller's unit
    of work. Nothing here commits: the caller decides the transaction
    boundary so a ride settlement can include the debit.
    """

    def __init__(self, wallet_repo: WalletRepository):
        self.wallet_repo = wallet_repo

    def balance(self, rider_id: str) -> Decimal:
        wallet = self.wallet_repo.get_by_rider(rider_id)
        return round2(wallet.balance) if wallet else Decimal("0.00")

    def lock(self, rider_id: str) -> Optional[Wallet]:
        """Take the rider's row lock; serializes ride operations per rider."""
        return self.wallet_repo.get_by_rider(rider_id, for_update=True)

    def debit(
        self,
        rider_id: str,
        amount: Decimal,
        metadata: Optional[dict] = None,
        tx_type: TransactionType = TransactionType.RIDE_PAYMENT,
        fees: Decimal = Decimal("0"),
        payment_method: Optional[str] = "WALLET",
        allow_zero: bool = False,
    ) -> Decimal:
        """Take ``amount + fees`` from the wallet.

        ``allow_zero`` lets ride settlement record a 0.00 payment so every
        completed ride has its RIDE_PAYMENT row.
        """
        amount = round2(amount)
        fees = round2(fees)
        if amount < 0 or (amount == 0 and not allow_zero):
            raise InvalidAmountException()
        if tx_type.sign > 0:
            raise ValueError(f"{tx_type.value} is not a debit type")

        total = amount + fees
        wallet = self.wallet_repo.get_by_rider(rider_id, for_update=True)
        current = round2(wallet.balance) if wallet else Decimal("0.00")
        if wallet is None or current < total:
            logger.info(
                f"Debit refused for rider {rider_id}: balance={current}, required={total}"
            )
            raise InsufficientBalanceException(
                f"Insufficient balance: required {total}, available {current}"
            )

        wallet.balance = current - total
        self.wallet_repo.add_transaction(
            wallet,
            tx_type,
            amount=amount,
            fees=fees,
            total_amount=total,
            payment_method=payment_method,
            metadata=metadata,
        )
        self.wallet_repo.session.flush()

        MetricsCollector.record_wallet_operation(tx_type.value, float(total))
        logger.info(
            f"Debited {total} ({tx_type.value}) from rider {rider_id}: "
            f"{current} -> {wallet.balance}"
        )
        return round2(wallet.balance)

    def credit(
        self,
        rider_id: str,
        amount: Decimal,
        reason: str,
        metadata: Optional[dict] = None,
        tx_type: TransactionType = TransactionType.REFUND,
        fees: Decimal = Decimal("0"),
        payment_method: Optional[str] = None,
    ) -> Decimal:
        amount = round2(amount)
        fees = round2(fees)
        if amount <= 0 or fees >= amount:
            raise InvalidAmountException()
        if tx_type.sign < 0:
            raise ValueError(f"{tx_type.value} is not a credit type")

        net = amount - fees
        wallet = self.wallet_repo.get_or_create(rider_id, for_update=True)
        current = round2(wallet.balance)
        wallet.balance = current + net
        self.wallet_repo.add_transaction(
            wallet,
            tx_type,
            amount=amount,
            fees=fees,
            total_amount=net,
            payment_method=payment_method,
            metadata={**(metadata or {}), "reason": reason},
        )
        self.wallet_repo.session.flush()

        MetricsCollector.record_wallet_operation(tx_type.value, float(net))
        logger.info(
            f"Credited {net} ({tx_type.value}) to rider {rider_id}: "
            f"{current} -> {wallet.balance} ({reason})"
        )
        return round2(wallet.balance)

    def deposit(
        self, rider_id: str, amount: Decimal, payment_method: Optional[str] = None
    ) -> Decimal:
        return self.credit(
            rider_id,
            amount,
            reason="top-up",
            tx_type=TransactionType.DEPOSIT,
            payment_method=payment_method,
        )

    def withdraw(
        self,
        rider_id: str,
        amount: Decimal,
        fees: Decimal = Decimal("0"),
        payment_method: Optional[str] = None,
    ) -> Decimal:
        return self.debit(
            rider_id,
            amount,
            tx_type=TransactionType.WITHDRAWAL,
            fees=fees,
            payment_method=payment_method,
        )

    def refund(
        self, rider_id: str, amount: Decimal, reason: str, ride_id: Optional[str] = None
    ) -> Decimal:
        metadata = {"ride_id": ride_id} if ride_id else None
        return self.credit(
            rider_id, amount, reason=reason, metadata=metadata, tx_type=TransactionType.REFUND
        )

    def history(
        self, rider_id: str, page: int = 1, limit: int = 20
    ) -> Tuple[List[Transaction], int]:
        wallet = self.wallet_repo.get_by_rider(rider_id)
        if not wallet:
            return [], 0
        return self.wallet_repo.list_transactions(wallet.id, page, limit)

    def ledger_sum(self, rider_id: str) -> Decimal:
        """Signed sum of the rider's COMPLETED transactions."""
        wallet = self.wallet_repo.get_by_rider(rider_id)
        if not wallet:
            return Decimal("0.00")

        totals = self.wallet_repo.completed_totals_by_type(wallet.id)
        return round2(sum((tx_type.sign * total for tx_type, total in totals.items()), Decimal("0")))

    def reconcile(self, rider_id: str) -> Tuple[Decimal, Decimal, bool]:
        balance = self.balance(rider_id)
        ledger = self.ledger_sum(rider_id)
        consistent = balance == ledger
        if not consistent:
            logger.error(
                f"Wallet of rider {rider_id} out of balance: stored={balance}, ledger={ledger}"
            )
        return balance, ledger, consistent
