# p2p_market/routers/listings.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Response
from sqlalchemy.orm import Session

from p2p_market import crud, models, schemas
from p2p_market.database import get_db
from p2p_market.models import ListingStatus
from p2p_market.security import get_current_user

router = APIRouter(prefix="/listings", tags=["listings"])


def _shape(rows: List[models.Listing], include_offers: bool):
    model = schemas.ListingWithOffersOut if include_offers else schemas.ListingOut
    return [model.model_validate(r) for r in rows]


@router.post("", response_model=schemas.ListingOut, status_code=201, summary="Create listing")
def api_create_listing(
    payload: schemas.ListingCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return crud.create_listing(db, payload, seller_id=current_user.id)


@router.get("", summary="Browse listings")
def api_list_listings(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None, description="matches title or description"),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    status: ListingStatus = Query(ListingStatus.ACTIVE),
    exclude_seller: Optional[int] = Query(None, ge=1),
    sort: str = Query("newest", description="newest | price_asc | price_desc"),
    skip: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1),
    include_offers: bool = Query(False),
    db: Session = Depends(get_db),
):
    rows = crud.list_listings(
        db,
        status=status,
        category=category,
        search=search,
        min_price=min_price,
        max_price=max_price,
        exclude_seller=exclude_seller,
        sort=sort,
        skip=skip,
        limit=limit,
        include_offers=include_offers,
    )
    return _shape(rows, include_offers)


@router.get("/user/{user_id}", summary="Listings of one seller (any status)")
def api_list_user_listings(
    user_id: int = Path(..., ge=1),
    include_offers: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    rows = crud.list_listings(
        db,
        status=None,
        seller_id=user_id,
        skip=skip,
        limit=limit,
        include_offers=include_offers,
    )
    return _shape(rows, include_offers)


@router.get("/{listing_id}", response_model=schemas.ListingOut, summary="Listing detail")
def api_get_listing(listing_id: int = Path(..., ge=1), db: Session = Depends(get_db)):
    return crud.get_listing(db, listing_id)


@router.patch("/{listing_id}", response_model=schemas.ListingOut, summary="Edit own listing")
def api_update_listing(
    payload: schemas.ListingUpdate,
    listing_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return crud.update_listing(db, listing_id, payload, caller_id=current_user.id)


@router.delete("/{listing_id}", status_code=204, summary="Delete own listing")
def api_delete_listing(
    listing_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    crud.delete_listing(db, listing_id, caller_id=current_user.id)
    return Response(status_code=204)
