# p2p_market/crud.py
# Users + listing store. Offer / transaction logic lives in p2p_market/logic.
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session, selectinload, joinedload
from sqlalchemy.exc import IntegrityError

from p2p_market import models, schemas
from p2p_market.config import project_rules as R
from p2p_market.errors import (
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
)
from p2p_market.models import Listing, ListingStatus, Offer, User
from p2p_market.security import get_password_hash, verify_password

logger = logging.getLogger(__name__)


# =========================================================
# Users
# =========================================================
def create_user(db: Session, user: schemas.UserCreate) -> User:
    email = str(user.email).strip().lower()
    row = User(
        email=email,
        password_hash=get_password_hash(user.password),
        name=user.name,
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise InvalidStateError(f"Email already registered: {email}") from e
    db.refresh(row)
    return row


def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalar(select(User).where(User.email == email.strip().lower()))


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


# =========================================================
# Listings
# =========================================================
_SORTS = {
    "newest": (Listing.created_at.desc(), Listing.id.desc()),
    "price_asc": (Listing.price.asc(), Listing.id.asc()),
    "price_desc": (Listing.price.desc(), Listing.id.desc()),
}

# owners may move a listing between these; SOLD is only set by offer acceptance
_OWNER_STATUSES = (ListingStatus.DRAFT, ListingStatus.ACTIVE, ListingStatus.EXPIRED)


def create_listing(db: Session, listing: schemas.ListingCreate, *, seller_id: int) -> Listing:
    if listing.status not in (ListingStatus.DRAFT, ListingStatus.ACTIVE):
        raise InvalidArgumentError(f"New listings must be DRAFT or ACTIVE (got {listing.status.value})")

    row = Listing(
        seller_id=seller_id,
        title=listing.title,
        description=listing.description,
        price=listing.price,
        category=listing.category,
        condition=listing.condition,
        images=list(listing.images or []),
        status=listing.status,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("listing created: listing_id=%s seller_id=%s", row.id, seller_id)
    return row


def get_listing(db: Session, listing_id: int) -> Listing:
    row = db.get(Listing, listing_id, options=[joinedload(Listing.seller)])
    if not row:
        raise NotFoundError(f"Listing not found: {listing_id}")
    return row


def list_listings(
    db: Session,
    *,
    status: Optional[ListingStatus] = ListingStatus.ACTIVE,
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    seller_id: Optional[int] = None,
    exclude_seller: Optional[int] = None,
    sort: str = "newest",
    skip: int = 0,
    limit: Optional[int] = None,
    include_offers: bool = False,
) -> List[Listing]:
    if sort not in _SORTS:
        raise InvalidArgumentError(f"Unknown sort: {sort} (expected one of {', '.join(_SORTS)})")
    if min_price is not None and max_price is not None and min_price > max_price:
        raise InvalidArgumentError("min_price must not be greater than max_price")

    if limit is None:
        limit = R.DEFAULT_PAGE_SIZE
    limit = max(1, min(int(limit), R.MAX_PAGE_SIZE))

    q = select(Listing).options(joinedload(Listing.seller))
    if include_offers:
        q = q.options(selectinload(Listing.offers).joinedload(Offer.buyer))

    if status is not None:
        q = q.where(Listing.status == status)
    if category:
        q = q.where(Listing.category == category)
    if seller_id is not None:
        q = q.where(Listing.seller_id == seller_id)
    if exclude_seller is not None:
        q = q.where(Listing.seller_id != exclude_seller)
    if search:
        pattern = f"%{search.strip().lower()}%"
        q = q.where(or_(func.lower(Listing.title).like(pattern), func.lower(Listing.description).like(pattern)))
    if min_price is not None:
        q = q.where(Listing.price >= min_price)
    if max_price is not None:
        q = q.where(Listing.price <= max_price)

    q = q.order_by(*_SORTS[sort]).offset(max(0, skip)).limit(limit)
    return list(db.scalars(q).unique())


def update_listing(db: Session, listing_id: int, patch: schemas.ListingUpdate, *, caller_id: int) -> Listing:
    row = get_listing(db, listing_id)
    if row.seller_id != caller_id:
        raise ForbiddenError("You can only edit your own listings")

    data = patch.model_dump(exclude_unset=True)
    new_status = data.pop("status", None)

    if new_status is not None and new_status != row.status:
        if row.status == ListingStatus.SOLD:
            raise InvalidStateError("Sold listings cannot change status")
        if new_status not in _OWNER_STATUSES:
            raise InvalidArgumentError(f"Status {new_status.value} is set by offer acceptance only")
        row.status = new_status

    for key, value in data.items():
        if value is None:
            continue
        setattr(row, key, list(value) if key == "images" else value)

    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def delete_listing(db: Session, listing_id: int, *, caller_id: int) -> None:
    row = get_listing(db, listing_id)
    if row.seller_id != caller_id:
        raise ForbiddenError("You can only delete your own listings")

    has_offers = db.scalar(select(func.count(Offer.id)).where(Offer.listing_id == listing_id)) or 0
    if has_offers:
        raise InvalidStateError("Listing has offers and cannot be deleted; set it to EXPIRED instead")

    db.delete(row)
    db.commit()
    logger.info("listing deleted: listing_id=%s", listing_id)
