# p2p_market/routers/offers.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from p2p_market import models, schemas
from p2p_market.database import get_db
from p2p_market.logic import offer_engine
from p2p_market.logic.notifications import Notifier, get_notifier
from p2p_market.security import get_current_user

router = APIRouter(prefix="/offers", tags=["offers"])


# -----------------------------
# buyer side
# -----------------------------
@router.post("", response_model=schemas.OfferOut, status_code=201, summary="Make an offer")
def api_create_offer(
    payload: schemas.OfferCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    return offer_engine.create_offer(
        db,
        listing_id=payload.listing_id,
        buyer_id=current_user.id,
        amount=payload.amount,
        message=payload.message,
        notifier=notifier,
    )


@router.patch("/{offer_id}/withdraw", response_model=schemas.OfferOut, summary="Withdraw own pending offer")
def api_withdraw_offer(
    offer_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    return offer_engine.withdraw_offer(db, offer_id=offer_id, caller_id=current_user.id, notifier=notifier)


@router.get("/my-offers", response_model=List[schemas.OfferWithListingOut], summary="Offers I made")
def api_my_offers(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return offer_engine.find_by_buyer(db, buyer_id=current_user.id)


# -----------------------------
# seller side
# -----------------------------
@router.patch("/{offer_id}/accept", response_model=schemas.OfferAcceptOut, summary="Accept offer (sells the listing)")
def api_accept_offer(
    offer_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    offer, transaction_id = offer_engine.accept_offer(
        db, offer_id=offer_id, caller_id=current_user.id, notifier=notifier
    )
    out = schemas.OfferOut.model_validate(offer).model_dump()
    return schemas.OfferAcceptOut(**out, transaction_id=transaction_id)


@router.patch("/{offer_id}/decline", response_model=schemas.OfferOut, summary="Decline offer")
def api_decline_offer(
    offer_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    notifier: Notifier = Depends(get_notifier),
):
    return offer_engine.decline_offer(db, offer_id=offer_id, caller_id=current_user.id, notifier=notifier)


@router.get("/incoming", response_model=List[schemas.IncomingOfferOut], summary="Offers on my listings")
def api_incoming_offers(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return offer_engine.find_by_seller(db, seller_id=current_user.id)


# -----------------------------
# public
# -----------------------------
@router.get("/listing/{listing_id}", response_model=List[schemas.OfferWithBuyerOut], summary="Offers on a listing")
def api_listing_offers(listing_id: int = Path(..., ge=1), db: Session = Depends(get_db)):
    return offer_engine.find_by_listing(db, listing_id=listing_id)
