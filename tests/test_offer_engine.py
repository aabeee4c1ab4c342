# tests/test_offer_engine.py
import math

import pytest
from sqlalchemy import func, select

from p2p_market.config import project_rules as R
from p2p_market.database import SessionLocal
from p2p_market.errors import ForbiddenError, InvalidArgumentError, InvalidStateError, NotFoundError
from p2p_market.logic import offer_engine
from p2p_market.logic.notifications import NotificationType, RecordingNotifier
from p2p_market.models import (
    Listing,
    ListingStatus,
    Offer,
    OfferStatus,
    Transaction,
    TransactionStatus,
)


def _offer(db, listing, buyer, amount=950, notifier=None, message=None):
    return offer_engine.create_offer(
        db, listing_id=listing.id, buyer_id=buyer.id, amount=amount, message=message, notifier=notifier
    )


def _reload(db, model, pk):
    db.expire_all()
    return db.get(model, pk)


# -------------------------------------------------------
# create
# -------------------------------------------------------
def test_create_offer_is_pending_and_seller_is_notified(db, listing, seller, buyer, notifier):
    offer = _offer(db, listing, buyer, amount=950, notifier=notifier, message="Can you do $950?")

    assert offer.status == OfferStatus.PENDING
    assert offer.amount == 950
    assert offer.message == "Can you do $950?"

    events = notifier.for_user(seller.id)
    assert len(events) == 1
    ev = events[0]
    assert ev.type is NotificationType.NEW_OFFER
    assert ev.listing_id == listing.id
    assert ev.offer_id == offer.id
    assert ev.amount == 950
    assert "$950.00" in ev.message and listing.title in ev.message
    assert notifier.for_user(buyer.id) == []


@pytest.mark.parametrize("status", [ListingStatus.DRAFT, ListingStatus.SOLD, ListingStatus.EXPIRED])
def test_offer_on_non_active_listing_is_invalid_state(db, make_listing, seller, buyer, notifier, status):
    listing = make_listing(seller.id, status=ListingStatus.DRAFT)
    listing.status = status
    db.commit()

    with pytest.raises(InvalidStateError):
        _offer(db, listing, buyer, notifier=notifier)

    assert db.scalar(select(func.count(Offer.id))) == 0
    assert notifier.events == []


def test_offer_on_missing_listing_is_not_found(db, buyer):
    with pytest.raises(NotFoundError):
        offer_engine.create_offer(db, listing_id=999, buyer_id=buyer.id, amount=10)


def test_offer_on_own_listing_is_forbidden(db, listing, seller):
    with pytest.raises(ForbiddenError):
        _offer(db, listing, seller)


@pytest.mark.parametrize("amount", [-1, -0.01, math.nan])
def test_offer_with_bad_amount_is_invalid_argument(db, listing, buyer, amount):
    with pytest.raises(InvalidArgumentError):
        _offer(db, listing, buyer, amount=amount)


def test_zero_amount_offer_is_allowed(db, listing, buyer):
    assert _offer(db, listing, buyer, amount=0).status == OfferStatus.PENDING


# -------------------------------------------------------
# accept
# -------------------------------------------------------
def test_accept_950_scenario(db, listing, seller, buyer, notifier):
    offer = _offer(db, listing, buyer, amount=950)
    notifier.clear()

    accepted, tx_id = offer_engine.accept_offer(db, offer_id=offer.id, caller_id=seller.id, notifier=notifier)

    assert accepted.status == OfferStatus.ACCEPTED
    assert _reload(db, Listing, listing.id).status == ListingStatus.SOLD

    tx = db.get(Transaction, tx_id)
    assert tx.status == TransactionStatus.OFFER_ACCEPTED
    assert tx.buyer_id == buyer.id
    assert tx.seller_id == seller.id
    assert tx.offer_id == offer.id

    events = notifier.for_user(buyer.id)
    assert [e.type for e in events] == [NotificationType.OFFER_ACCEPTED]
    assert events[0].transaction_id == tx_id
    assert events[0].offer_id == offer.id
    assert listing.title in events[0].message


def test_accept_by_non_owner_is_forbidden_and_offer_unchanged(db, listing, buyer, other_buyer):
    offer = _offer(db, listing, buyer)

    with pytest.raises(ForbiddenError):
        offer_engine.accept_offer(db, offer_id=offer.id, caller_id=other_buyer.id)
    with pytest.raises(ForbiddenError):
        offer_engine.accept_offer(db, offer_id=offer.id, caller_id=buyer.id)

    assert _reload(db, Offer, offer.id).status == OfferStatus.PENDING
    assert _reload(db, Listing, listing.id).status == ListingStatus.ACTIVE
    assert db.scalar(select(func.count(Transaction.id))) == 0


def test_accept_missing_offer_is_not_found(db, seller):
    with pytest.raises(NotFoundError):
        offer_engine.accept_offer(db, offer_id=404, caller_id=seller.id)


def test_accept_cascades_siblings_and_creates_one_transaction(db, listing, seller, buyer, other_buyer):
    o1 = _offer(db, listing, buyer, amount=950)
    o2 = _offer(db, listing, other_buyer, amount=900)

    _, tx_id = offer_engine.accept_offer(db, offer_id=o1.id, caller_id=seller.id)

    assert _reload(db, Offer, o1.id).status == OfferStatus.ACCEPTED
    assert db.get(Offer, o2.id).status == OfferStatus.DECLINED
    assert db.get(Listing, listing.id).status == ListingStatus.SOLD

    txs = list(db.scalars(select(Transaction)))
    assert len(txs) == 1
    assert txs[0].id == tx_id
    assert txs[0].offer_id == o1.id
    assert txs[0].status == TransactionStatus.OFFER_ACCEPTED


def test_cascade_leaves_withdrawn_siblings_alone(db, listing, seller, buyer, other_buyer):
    o1 = _offer(db, listing, buyer)
    o2 = _offer(db, listing, other_buyer)
    offer_engine.withdraw_offer(db, offer_id=o2.id, caller_id=other_buyer.id)

    offer_engine.accept_offer(db, offer_id=o1.id, caller_id=seller.id)

    assert _reload(db, Offer, o2.id).status == OfferStatus.WITHDRAWN


def test_accept_second_offer_after_sale_is_invalid_state(db, listing, seller, buyer, other_buyer):
    o1 = _offer(db, listing, buyer)
    o2 = _offer(db, listing, other_buyer)
    offer_engine.accept_offer(db, offer_id=o1.id, caller_id=seller.id)

    with pytest.raises(InvalidStateError):
        offer_engine.accept_offer(db, offer_id=o2.id, caller_id=seller.id)

    assert db.scalar(select(func.count(Transaction.id))) == 1


def test_retried_accept_is_invalid_state(db, listing, seller, buyer):
    offer = _offer(db, listing, buyer)
    offer_engine.accept_offer(db, offer_id=offer.id, caller_id=seller.id)

    with pytest.raises(InvalidStateError):
        offer_engine.accept_offer(db, offer_id=offer.id, caller_id=seller.id)

    assert db.scalar(select(func.count(Transaction.id))) == 1


def test_accept_loses_race_when_listing_already_sold(db, listing, seller, buyer):
    # offer still PENDING but the listing was sold underneath it
    offer = _offer(db, listing, buyer)
    listing.status = ListingStatus.SOLD
    db.commit()

    with pytest.raises(InvalidStateError):
        offer_engine.accept_offer(db, offer_id=offer.id, caller_id=seller.id)

    # nothing from the unit survives
    assert _reload(db, Offer, offer.id).status == OfferStatus.PENDING
    assert db.scalar(select(func.count(Transaction.id))) == 0


def test_cascade_declined_buyers_are_not_notified_by_default(db, listing, seller, buyer, other_buyer, notifier):
    o1 = _offer(db, listing, buyer)
    _offer(db, listing, other_buyer)
    notifier.clear()

    offer_engine.accept_offer(db, offer_id=o1.id, caller_id=seller.id, notifier=notifier)

    assert [uid for uid, _ in notifier.events] == [buyer.id]
    assert notifier.for_user(other_buyer.id) == []


def test_cascade_declined_buyers_notified_when_enabled(
    db, listing, seller, buyer, other_buyer, notifier, monkeypatch
):
    monkeypatch.setattr(R, "NOTIFY_CASCADE_DECLINED", True)
    o1 = _offer(db, listing, buyer)
    o2 = _offer(db, listing, other_buyer)
    notifier.clear()

    offer_engine.accept_offer(db, offer_id=o1.id, caller_id=seller.id, notifier=notifier)

    declined = notifier.for_user(other_buyer.id)
    assert len(declined) == 1
    assert declined[0].type is NotificationType.OFFER_DECLINED
    assert declined[0].offer_id == o2.id
    assert "sold to another buyer" in declined[0].message


class _Broken:
    def push(self, user_id, event):
        raise RuntimeError("socket gone")


def test_notifier_failure_does_not_roll_back_accept(db, listing, seller, buyer):
    offer = _offer(db, listing, buyer, notifier=_Broken())

    _, tx_id = offer_engine.accept_offer(db, offer_id=offer.id, caller_id=seller.id, notifier=_Broken())

    assert _reload(db, Offer, offer.id).status == OfferStatus.ACCEPTED
    assert db.get(Transaction, tx_id) is not None


# -------------------------------------------------------
# decline / withdraw
# -------------------------------------------------------
def test_decline_pending_offer_notifies_buyer(db, listing, seller, buyer, notifier):
    offer = _offer(db, listing, buyer)

    declined = offer_engine.decline_offer(db, offer_id=offer.id, caller_id=seller.id, notifier=notifier)

    assert declined.status == OfferStatus.DECLINED
    assert _reload(db, Listing, listing.id).status == ListingStatus.ACTIVE
    events = notifier.for_user(buyer.id)
    assert [e.type for e in events] == [NotificationType.OFFER_DECLINED]
    assert events[0].offer_id == offer.id


def test_decline_by_non_owner_is_forbidden(db, listing, buyer):
    offer = _offer(db, listing, buyer)
    with pytest.raises(ForbiddenError):
        offer_engine.decline_offer(db, offer_id=offer.id, caller_id=buyer.id)
    assert _reload(db, Offer, offer.id).status == OfferStatus.PENDING


def test_decline_requires_pending(db, listing, seller, buyer):
    offer = _offer(db, listing, buyer)
    offer_engine.decline_offer(db, offer_id=offer.id, caller_id=seller.id)

    with pytest.raises(InvalidStateError):
        offer_engine.decline_offer(db, offer_id=offer.id, caller_id=seller.id)


def test_redecline_allowed_when_rule_relaxed(db, listing, seller, buyer, monkeypatch):
    monkeypatch.setattr(R, "DECLINE_REQUIRES_PENDING", False)
    notifier = RecordingNotifier()
    offer = _offer(db, listing, buyer)
    offer_engine.decline_offer(db, offer_id=offer.id, caller_id=seller.id)

    again = offer_engine.decline_offer(db, offer_id=offer.id, caller_id=seller.id, notifier=notifier)

    assert again.status == OfferStatus.DECLINED
    assert len(notifier.for_user(buyer.id)) == 1


def test_accepted_offer_cannot_be_declined_even_when_relaxed(db, listing, seller, buyer, monkeypatch):
    monkeypatch.setattr(R, "DECLINE_REQUIRES_PENDING", False)
    offer = _offer(db, listing, buyer)
    offer_engine.accept_offer(db, offer_id=offer.id, caller_id=seller.id)

    with pytest.raises(InvalidStateError):
        offer_engine.decline_offer(db, offer_id=offer.id, caller_id=seller.id)
    assert _reload(db, Offer, offer.id).status == OfferStatus.ACCEPTED


def test_withdraw_notifies_seller(db, listing, seller, buyer, notifier):
    offer = _offer(db, listing, buyer)
    notifier.clear()

    withdrawn = offer_engine.withdraw_offer(db, offer_id=offer.id, caller_id=buyer.id, notifier=notifier)

    assert withdrawn.status == OfferStatus.WITHDRAWN
    events = notifier.for_user(seller.id)
    assert [e.type for e in events] == [NotificationType.OFFER_WITHDRAWN]


def test_withdraw_someone_elses_offer_is_forbidden(db, listing, seller, buyer, other_buyer):
    offer = _offer(db, listing, buyer)
    for caller in (other_buyer, seller):
        with pytest.raises(ForbiddenError):
            offer_engine.withdraw_offer(db, offer_id=offer.id, caller_id=caller.id)


def test_withdraw_twice_is_invalid_state(db, listing, buyer):
    offer = _offer(db, listing, buyer)
    offer_engine.withdraw_offer(db, offer_id=offer.id, caller_id=buyer.id)

    with pytest.raises(InvalidStateError):
        offer_engine.withdraw_offer(db, offer_id=offer.id, caller_id=buyer.id)
    assert _reload(db, Offer, offer.id).status == OfferStatus.WITHDRAWN


def test_withdraw_accepted_offer_is_invalid_state(db, listing, seller, buyer):
    offer = _offer(db, listing, buyer)
    offer_engine.accept_offer(db, offer_id=offer.id, caller_id=seller.id)

    with pytest.raises(InvalidStateError):
        offer_engine.withdraw_offer(db, offer_id=offer.id, caller_id=buyer.id)


def _accept_right_after_load(monkeypatch, seller_id):
    """The seller's accept commits in another session once the offer has been read."""
    real = offer_engine._require_offer
    fired = []

    def load_then_accept(db, offer_id):
        offer = real(db, offer_id)
        if not fired:
            fired.append(offer_id)
            other = SessionLocal()
            try:
                offer_engine.accept_offer(other, offer_id=offer_id, caller_id=seller_id)
            finally:
                other.close()
        return offer

    monkeypatch.setattr(offer_engine, "_require_offer", load_then_accept)


def test_withdraw_racing_accept_keeps_offer_accepted(db, listing, seller, buyer, notifier, monkeypatch):
    offer = _offer(db, listing, buyer)
    notifier.clear()
    _accept_right_after_load(monkeypatch, seller.id)

    with pytest.raises(InvalidStateError):
        offer_engine.withdraw_offer(db, offer_id=offer.id, caller_id=buyer.id, notifier=notifier)

    assert _reload(db, Offer, offer.id).status == OfferStatus.ACCEPTED
    assert db.get(Listing, listing.id).status == ListingStatus.SOLD
    assert db.scalar(select(func.count(Transaction.id))) == 1
    assert notifier.events == []


def test_decline_racing_accept_keeps_offer_accepted(db, listing, seller, buyer, notifier, monkeypatch):
    monkeypatch.setattr(R, "DECLINE_REQUIRES_PENDING", False)
    offer = _offer(db, listing, buyer)
    notifier.clear()
    _accept_right_after_load(monkeypatch, seller.id)

    with pytest.raises(InvalidStateError):
        offer_engine.decline_offer(db, offer_id=offer.id, caller_id=seller.id, notifier=notifier)

    assert _reload(db, Offer, offer.id).status == OfferStatus.ACCEPTED
    assert notifier.events == []


# -------------------------------------------------------
# read projections
# -------------------------------------------------------
def test_find_projections(db, make_listing, seller, buyer, other_buyer):
    phone = make_listing(seller.id, "iPhone 15 Pro", 999)
    laptop = make_listing(seller.id, "MacBook Air M2", 850)
    jacket = make_listing(other_buyer.id, "Vintage Leather Jacket", 120)

    a = _offer(db, phone, buyer, 950)
    b = _offer(db, laptop, buyer, 800)
    c = _offer(db, phone, other_buyer, 900)
    d = _offer(db, jacket, buyer, 100)

    assert [o.id for o in offer_engine.find_by_listing(db, listing_id=phone.id)] == [c.id, a.id]
    assert [o.id for o in offer_engine.find_by_buyer(db, buyer_id=buyer.id)] == [d.id, b.id, a.id]
    assert [o.id for o in offer_engine.find_by_seller(db, seller_id=seller.id)] == [c.id, b.id, a.id]

    with pytest.raises(NotFoundError):
        offer_engine.find_by_listing(db, listing_id=999)
