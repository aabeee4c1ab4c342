# p2p_market/logic/transaction_flow.py
"""
Post-acceptance fulfilment state machine.

    OFFER_ACCEPTED → PAID → SHIPPED → DELIVERED → COMPLETED
                      (buyer)  (seller)  (buyer)    (buyer)

Side branches: buyer may DISPUTE and seller may CANCEL from any non-terminal
state. COMPLETED, CANCELLED and DISPUTED are terminal here (dispute
resolution happens outside this service). PAYMENT_PENDING exists for display
only: no row of the table leads into it.
"""
from __future__ import annotations

import enum
import logging
from datetime import datetime, timezone
from typing import FrozenSet, List, Optional, Tuple

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session, joinedload

from p2p_market.errors import (
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateTransitionError,
    NotFoundError,
)
from p2p_market.logic import notifications as N
from p2p_market.models import Offer, Transaction, TransactionStatus

logger = logging.getLogger(__name__)

TS = TransactionStatus


class Role(str, enum.Enum):
    BUYER = "buyer"
    SELLER = "seller"


TERMINAL_STATUSES: FrozenSet[TransactionStatus] = frozenset({TS.COMPLETED, TS.CANCELLED, TS.DISPUTED})

# (from, to) steps along the happy path, per role
_STEPS: dict = {
    Role.BUYER: frozenset({
        (TS.OFFER_ACCEPTED, TS.PAID),
        (TS.SHIPPED, TS.DELIVERED),
        (TS.DELIVERED, TS.COMPLETED),
    }),
    Role.SELLER: frozenset({
        (TS.PAID, TS.SHIPPED),
    }),
}

# reachable from any non-terminal state, per role
_ESCAPES: dict = {
    Role.BUYER: TS.DISPUTED,
    Role.SELLER: TS.CANCELLED,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def role_of(tx: Transaction, user_id: int) -> Optional[Role]:
    if tx.buyer_id == user_id:
        return Role.BUYER
    if tx.seller_id == user_id:
        return Role.SELLER
    return None


def is_transition_allowed(role: Role, current: TransactionStatus, target: TransactionStatus) -> bool:
    if current in TERMINAL_STATUSES:
        return False
    if target is _ESCAPES[role]:
        return True
    return (current, target) in _STEPS[role]


def allowed_transitions(tx: Transaction, user_id: int) -> List[TransactionStatus]:
    """Targets the caller may request from the current state (empty for non-parties)."""
    role = role_of(tx, user_id)
    if role is None:
        return []
    return [s for s in TransactionStatus if is_transition_allowed(role, tx.status, s)]


def _coerce_status(value) -> TransactionStatus:
    if isinstance(value, TransactionStatus):
        return value
    try:
        return TransactionStatus(str(value).strip().upper())
    except ValueError:
        raise InvalidArgumentError(f"Unknown transaction status: {value}") from None


# ---------------------------------------------------------------------
# reads
# ---------------------------------------------------------------------
def _load(db: Session, transaction_id: int) -> Transaction:
    tx = db.get(
        Transaction,
        transaction_id,
        options=[
            joinedload(Transaction.offer).joinedload(Offer.listing),
            joinedload(Transaction.buyer),
            joinedload(Transaction.seller),
        ],
    )
    if not tx:
        raise NotFoundError(f"Transaction not found: {transaction_id}")
    return tx


def get_transaction(db: Session, *, transaction_id: int, caller_id: int) -> Transaction:
    tx = _load(db, transaction_id)
    if role_of(tx, caller_id) is None:
        raise ForbiddenError("Access denied")
    return tx


def list_my_transactions(db: Session, *, caller_id: int) -> List[Transaction]:
    # most recently updated first: clients group Active / Completed off this order
    stmt = (
        select(Transaction)
        .options(
            joinedload(Transaction.offer).joinedload(Offer.listing),
            joinedload(Transaction.buyer),
            joinedload(Transaction.seller),
        )
        .where(or_(Transaction.buyer_id == caller_id, Transaction.seller_id == caller_id))
        .order_by(Transaction.updated_at.desc(), Transaction.id.desc())
    )
    return list(db.scalars(stmt).unique())


# ---------------------------------------------------------------------
# status update
# ---------------------------------------------------------------------
def update_transaction_status(
    db: Session,
    *,
    transaction_id: int,
    caller_id: int,
    target_status,
    notifier: Optional[N.Notifier] = None,
) -> Transaction:
    tx = get_transaction(db, transaction_id=transaction_id, caller_id=caller_id)
    target = _coerce_status(target_status)
    role = role_of(tx, caller_id)
    current = tx.status

    if not is_transition_allowed(role, current, target):
        raise InvalidStateTransitionError(
            f"Invalid status transition from {current.value} to {target.value} by {role.value}"
        )

    # compare-and-set on the status we validated against
    changed = db.execute(
        update(Transaction)
        .where(Transaction.id == tx.id, Transaction.status == current)
        .values(status=target, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    ).rowcount
    if changed != 1:
        db.rollback()
        raise InvalidStateTransitionError(
            f"Invalid status transition from {current.value} to {target.value} by {role.value}: "
            "status changed concurrently"
        )
    db.commit()
    db.refresh(tx)

    listing = tx.offer.listing
    counterparty = tx.seller_id if role is Role.BUYER else tx.buyer_id
    logger.info(
        "transaction status: id=%s %s -> %s by %s(%s)",
        tx.id, current.value, target.value, role.value, caller_id,
    )

    N.safe_push(notifier, counterparty, N.transaction_update_event(listing, tx))
    return tx


def transition_table() -> List[Tuple[str, str, str]]:
    """(role, from, to) rows, with the escape branches expanded."""
    rows: List[Tuple[str, str, str]] = []
    for role in Role:
        for frm in TransactionStatus:
            for to in TransactionStatus:
                if is_transition_allowed(role, frm, to):
                    rows.append((role.value, frm.value, to.value))
    return rows
