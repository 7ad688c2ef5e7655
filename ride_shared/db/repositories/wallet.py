from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import uuid4

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ride_shared.db.enums import TransactionStatus, TransactionType
from ride_shared.db.models import Transaction, Wallet


class WalletRepository:
    def __init__(self, session: Session):
        self.session = session

    # --- Wallet rows ---

    def get_by_rider(self, rider_id: str, for_update: bool = False) -> Optional[Wallet]:
        query = select(Wallet).where(Wallet.rider_id == rider_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(query).scalar_one_or_none()

    def get_or_create(self, rider_id: str, for_update: bool = False) -> Wallet:
        wallet = self.get_by_rider(rider_id, for_update=for_update)
        if wallet:
            return wallet

        wallet = Wallet(id=str(uuid4()), rider_id=rider_id, balance=Decimal("0.00"))
        self.session.add(wallet)
        self.session.flush()
        logger.debug(f"Created wallet {wallet.id} for rider {rider_id}")
        return wallet

    # --- Ledger ---

    def add_transaction(
        self,
        wallet: Wallet,
        tx_type: TransactionType,
        amount: Decimal,
        fees: Decimal,
        total_amount: Decimal,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        payment_method: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Transaction:
        transaction = Transaction(
            id=str(uuid4()),
            wallet_id=wallet.id,
            type=tx_type,
            amount=amount,
            fees=fees,
            total_amount=total_amount,
            status=status,
            payment_method=payment_method,
            meta=metadata,
        )
        self.session.add(transaction)
        return transaction

    def list_transactions(
        self, wallet_id: str, page: int = 1, limit: int = 20
    ) -> Tuple[List[Transaction], int]:
        total = self.session.execute(
            select(func.count(Transaction.id)).where(Transaction.wallet_id == wallet_id)
        ).scalar_one()
        items = (
            self.session.execute(
                select(Transaction)
                .where(Transaction.wallet_id == wallet_id)
                .order_by(Transaction.created_at.desc(), Transaction.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            .scalars()
            .all()
        )
        return list(items), int(total)

    def completed_totals_by_type(self, wallet_id: str) -> dict:
        rows = self.session.execute(
            select(
                Transaction.type,
                func.coalesce(func.sum(Transaction.total_amount), 0),
            )
            .where(
                Transaction.wallet_id == wallet_id,
                Transaction.status == TransactionStatus.COMPLETED,
            )
            .group_by(Transaction.type)
        ).all()
        return {tx_type: Decimal(str(total)) for tx_type, total in rows}
