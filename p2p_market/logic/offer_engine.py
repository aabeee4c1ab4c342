# p2p_market/logic/offer_engine.py
"""
Offer lifecycle: create → (accept | decline | withdraw).

PENDING is the only non-terminal offer state. Acceptance is one atomic unit:
offer ACCEPTED, listing SOLD, sibling PENDING offers DECLINED, transaction
created in OFFER_ACCEPTED. The first two writes are conditional updates, so a
racing second acceptance on the same listing matches zero rows and fails with
InvalidStateError instead of selling twice.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session, joinedload

from p2p_market.config import project_rules as R
from p2p_market.errors import (
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from p2p_market.logic import notifications as N
from p2p_market.models import (
    Listing,
    ListingStatus,
    Offer,
    OfferStatus,
    Transaction,
    TransactionStatus,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_offer(db: Session, offer_id: int) -> Offer:
    offer = db.get(Offer, offer_id, options=[joinedload(Offer.listing)])
    if not offer:
        raise NotFoundError(f"Offer not found: {offer_id}")
    return offer


def _move_offer(
    db: Session, offer: Offer, allowed: Tuple[OfferStatus, ...], target: OfferStatus, msg: str
) -> None:
    """Conditional status write: fails if the offer left `allowed` since it was read."""
    changed = db.execute(
        update(Offer)
        .where(Offer.id == offer.id, Offer.status.in_(allowed))
        .values(status=target, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    ).rowcount
    if changed != 1:
        db.rollback()
        raise InvalidStateError(msg)
    db.commit()
    db.refresh(offer)


# ---------------------------------------------------------------------
# create
# ---------------------------------------------------------------------
def create_offer(
    db: Session,
    *,
    listing_id: int,
    buyer_id: int,
    amount: float,
    message: Optional[str] = None,
    notifier: Optional[N.Notifier] = None,
) -> Offer:
    listing = db.get(Listing, listing_id)
    if not listing:
        raise NotFoundError(f"Listing not found: {listing_id}")
    if listing.status != ListingStatus.ACTIVE:
        raise InvalidStateError(f"Listing is not active: status={listing.status.value}")
    if listing.seller_id == buyer_id:
        raise ForbiddenError("Cannot make an offer on your own listing")
    if amount is None or math.isnan(amount) or amount < 0:
        raise InvalidArgumentError(f"amount must be >= 0 (got {amount})")

    offer = Offer(
        listing_id=listing.id,
        buyer_id=buyer_id,
        amount=amount,
        message=message,
        status=OfferStatus.PENDING,
    )
    db.add(offer)
    db.commit()
    db.refresh(offer)
    logger.info("offer created: offer_id=%s listing_id=%s buyer_id=%s", offer.id, listing.id, buyer_id)

    N.safe_push(notifier, listing.seller_id, N.new_offer_event(listing, offer))
    return offer


# ---------------------------------------------------------------------
# accept (atomic unit)
# ---------------------------------------------------------------------
def accept_offer(
    db: Session,
    *,
    offer_id: int,
    caller_id: int,
    notifier: Optional[N.Notifier] = None,
) -> Tuple[Offer, int]:
    """Returns (accepted offer, new transaction id)."""
    offer = _require_offer(db, offer_id)
    listing = offer.listing

    if listing.seller_id != caller_id:
        raise ForbiddenError("Not your listing")
    if offer.status != OfferStatus.PENDING:
        raise InvalidStateError(f"Offer is not pending: status={offer.status.value}")

    listing_id = listing.id
    listing_title = listing.title
    buyer_id = offer.buyer_id

    try:
        # row lock where the dialect has one (ignored on SQLite)
        db.execute(select(Listing.id).where(Listing.id == listing_id).with_for_update())

        now = _utcnow()
        won = db.execute(
            update(Offer)
            .where(Offer.id == offer_id, Offer.status == OfferStatus.PENDING)
            .values(status=OfferStatus.ACCEPTED, updated_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        if won != 1:
            raise InvalidStateError("Offer is no longer pending")

        sold = db.execute(
            update(Listing)
            .where(Listing.id == listing_id, Listing.status == ListingStatus.ACTIVE)
            .values(status=ListingStatus.SOLD, updated_at=now)
            .execution_options(synchronize_session=False)
        ).rowcount
        if sold != 1:
            raise InvalidStateError("Listing is no longer active")

        cascaded: List[Tuple[int, int]] = [
            (row.id, row.buyer_id)
            for row in db.execute(
                select(Offer.id, Offer.buyer_id).where(
                    Offer.listing_id == listing_id,
                    Offer.id != offer_id,
                    Offer.status == OfferStatus.PENDING,
                )
            )
        ]
        if cascaded:
            db.execute(
                update(Offer)
                .where(Offer.id.in_([oid for oid, _ in cascaded]), Offer.status == OfferStatus.PENDING)
                .values(status=OfferStatus.DECLINED, updated_at=now)
                .execution_options(synchronize_session=False)
            )

        tx = Transaction(
            offer_id=offer_id,
            buyer_id=buyer_id,
            seller_id=caller_id,
            status=TransactionStatus.OFFER_ACCEPTED,
        )
        db.add(tx)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(offer)
    transaction_id = tx.id
    logger.info(
        "offer accepted: offer_id=%s listing_id=%s transaction_id=%s cascaded=%s",
        offer_id, listing_id, transaction_id, [oid for oid, _ in cascaded],
    )

    N.safe_push(
        notifier,
        buyer_id,
        N.offer_accepted_event(listing_id, listing_title, offer_id, transaction_id),
    )
    if R.NOTIFY_CASCADE_DECLINED:
        for other_offer_id, other_buyer_id in cascaded:
            N.safe_push(
                notifier,
                other_buyer_id,
                N.offer_declined_event(listing_id, listing_title, other_offer_id, sold=True),
            )

    return offer, transaction_id


# ---------------------------------------------------------------------
# decline / withdraw
# ---------------------------------------------------------------------
def decline_offer(
    db: Session,
    *,
    offer_id: int,
    caller_id: int,
    notifier: Optional[N.Notifier] = None,
) -> Offer:
    offer = _require_offer(db, offer_id)
    listing = offer.listing

    if listing.seller_id != caller_id:
        raise ForbiddenError("Not your listing")

    if R.DECLINE_REQUIRES_PENDING:
        allowed = (OfferStatus.PENDING,)
    else:
        allowed = (OfferStatus.PENDING, OfferStatus.DECLINED)
    if offer.status not in allowed:
        raise InvalidStateError(f"Cannot decline offer: status={offer.status.value}")

    _move_offer(db, offer, allowed, OfferStatus.DECLINED, "Cannot decline offer: status changed concurrently")
    logger.info("offer declined: offer_id=%s listing_id=%s", offer.id, listing.id)

    N.safe_push(notifier, offer.buyer_id, N.offer_declined_event(listing.id, listing.title, offer.id))
    return offer


def withdraw_offer(
    db: Session,
    *,
    offer_id: int,
    caller_id: int,
    notifier: Optional[N.Notifier] = None,
) -> Offer:
    offer = _require_offer(db, offer_id)

    if offer.buyer_id != caller_id:
        raise ForbiddenError("Not your offer")
    if offer.status != OfferStatus.PENDING:
        raise InvalidStateError(f"Cannot withdraw processed offer: status={offer.status.value}")

    listing = offer.listing
    _move_offer(
        db, offer, (OfferStatus.PENDING,), OfferStatus.WITHDRAWN,
        "Cannot withdraw processed offer: status changed concurrently",
    )
    logger.info("offer withdrawn: offer_id=%s listing_id=%s", offer.id, listing.id)

    N.safe_push(notifier, listing.seller_id, N.offer_withdrawn_event(listing, offer))
    return offer


# ---------------------------------------------------------------------
# read projections
# ---------------------------------------------------------------------
def find_by_listing(db: Session, *, listing_id: int) -> List[Offer]:
    if db.get(Listing, listing_id) is None:
        raise NotFoundError(f"Listing not found: {listing_id}")
    stmt = (
        select(Offer)
        .options(joinedload(Offer.buyer))
        .where(Offer.listing_id == listing_id)
        .order_by(Offer.created_at.desc(), Offer.id.desc())
    )
    return list(db.scalars(stmt))


def find_by_buyer(db: Session, *, buyer_id: int) -> List[Offer]:
    stmt = (
        select(Offer)
        .options(joinedload(Offer.listing))
        .where(Offer.buyer_id == buyer_id)
        .order_by(Offer.created_at.desc(), Offer.id.desc())
    )
    return list(db.scalars(stmt))


def find_by_seller(db: Session, *, seller_id: int) -> List[Offer]:
    stmt = (
        select(Offer)
        .join(Offer.listing)
        .options(joinedload(Offer.listing), joinedload(Offer.buyer))
        .where(Listing.seller_id == seller_id)
        .order_by(Offer.created_at.desc(), Offer.id.desc())
    )
    return list(db.scalars(stmt))
