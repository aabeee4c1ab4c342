# p2p_market/routers/transactions.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from p2p_market import models, schemas
from p2p_market.database import get_db
from p2p_market.logic import transaction_flow
from p2p_market.logic.notifications import Notifier, get_notifier
from p2p_market.security import get_current_user

router = APIRouter(prefix="/transactions", tags=["transactions"])


def _detail(tx: models.Transaction, user_id: int) -> schemas.TransactionDetailOut:
    out = schemas.TransactionDetailOut.model_validate(tx)
    out.allowed_transitions = transaction_flow.allowed_transitions(tx, user_id)
    return out


@router.get("/my", response_model=List[schemas.TransactionDetailOut], summary="My transactions (latest activity first)")
def api_my_transactions(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    rows = transaction_flow.list_my_transactions(db, caller_id=current_user.id)
    return [_detail(tx, current_user.id) for tx in rows]


@router.get("/{transaction_id}", response_model=schemas.TransactionDetailOut, summary="Transaction detail")
def api_get_transaction(
    transaction_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    tx = transaction_flow.get_transaction(db, transaction_id=transaction_id, caller_id=current_user.id)
    return _detail(tx, current_user.id)


@router.patch("/{transaction_id}/status", response_model=schemas.TransactionOut, summary="Advance transaction status")
def api_update_status(
    payload: schemas.TransactionStatusIn,
    transaction_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    return transaction_flow.update_transaction_status(
        db,
        transaction_id=transaction_id,
        caller_id=current_user.id,
        target_status=payload.status,
        notifier=notifier,
    )
