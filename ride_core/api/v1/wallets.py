import math

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy.orm import Session

from ride_core.api.dependencies import get_session, get_wallet_ledger
from ride_core.core.exceptions import RideCoreException, http_exception_from
from ride_core.schemas import (
    AmountRequest,
    BalanceResponse,
    Pagination,
    ReconciliationResponse,
    RefundRequest,
    TransactionHistoryResponse,
    TransactionResponse,
    WithdrawRequest,
)
from ride_core.services.wallet import WalletLedger

router = APIRouter()


@router.get("/wallets/{rider_id}", response_model=BalanceResponse)
def get_balance(
    rider_id: str,
    wallet_ledger: WalletLedger = Depends(get_wallet_ledger),
):
    return BalanceResponse(rider_id=rider_id, balance=wallet_ledger.balance(rider_id))


@router.post("/wallets/{rider_id}/deposit", response_model=BalanceResponse)
def deposit(
    rider_id: str,
    request: AmountRequest,
    wallet_ledger: WalletLedger = Depends(get_wallet_ledger),
    session: Session = Depends(get_session),
):
    try:
        balance = wallet_ledger.deposit(rider_id, request.amount, request.payment_method)
        session.commit()
        return BalanceResponse(rider_id=rider_id, balance=balance)
    except RideCoreException as e:
        session.rollback()
        raise http_exception_from(e)
    except Exception as e:
        session.rollback()
        logger.exception(f"Error depositing to wallet of rider {rider_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/wallets/{rider_id}/withdraw", response_model=BalanceResponse)
def withdraw(
    rider_id: str,
    request: WithdrawRequest,
    wallet_ledger: WalletLedger = Depends(get_wallet_ledger),
    session: Session = Depends(get_session),
):
    try:
        balance = wallet_ledger.withdraw(
            rider_id, request.amount, request.fees, request.payment_method
        )
        session.commit()
        return BalanceResponse(rider_id=rider_id, balance=balance)
    except RideCoreException as e:
        session.rollback()
        raise http_exception_from(e)
    except Exception as e:
        session.rollback()
        logger.exception(f"Error withdrawing from wallet of rider {rider_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/wallets/{rider_id}/refund", response_model=BalanceResponse)
def refund(
    rider_id: str,
    request: RefundRequest,
    wallet_ledger: WalletLedger = Depends(get_wallet_ledger),
    session: Session = Depends(get_session),
):
    try:
        balance = wallet_ledger.refund(
            rider_id, request.amount, request.reason, request.ride_id
        )
        session.commit()
        return BalanceResponse(rider_id=rider_id, balance=balance)
    except RideCoreException as e:
        session.rollback()
        raise http_exception_from(e)
    except Exception as e:
        session.rollback()
        logger.exception(f"Error refunding rider {rider_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get(
    "/wallets/{rider_id}/transactions", response_model=TransactionHistoryResponse
)
def get_transactions(
    rider_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    wallet_ledger: WalletLedger = Depends(get_wallet_ledger),
):
    items, total = wallet_ledger.history(rider_id, page, limit)
    return TransactionHistoryResponse(
        transactions=[TransactionResponse.model_validate(t) for t in items],
        pagination=Pagination(
            page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)
        ),
    )


@router.get("/wallets/{rider_id}/reconcile", response_model=ReconciliationResponse)
def reconcile(
    rider_id: str,
    wallet_ledger: WalletLedger = Depends(get_wallet_ledger),
):
    balance, ledger, consistent = wallet_ledger.reconcile(rider_id)
    return ReconciliationResponse(
        rider_id=rider_id, balance=balance, ledger_sum=ledger, consistent=consistent
    )
