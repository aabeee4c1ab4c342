# p2p_market/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Optional, Any, Dict, List

from pydantic import BaseModel, Field, ConfigDict, EmailStr

# reuse the model enums
from p2p_market.models import Condition, ListingStatus, OfferStatus, TransactionStatus


# ─────────────────────────────────────────────────────────
# ORM base: response models read straight from SQLAlchemy rows
# ─────────────────────────────────────────────────────────
class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------------- Users / auth ----------------
class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: Optional[str] = None


class UserOut(ORMModel):
    id: int
    email: EmailStr
    name: Optional[str] = None
    created_at: datetime


class UserSummary(ORMModel):
    id: int
    name: Optional[str] = None
    email: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# ---------------- Listings ----------------
class ListingCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    category: str = Field(..., min_length=1)
    condition: Condition
    images: List[str] = Field(default_factory=list)
    status: ListingStatus = ListingStatus.ACTIVE


class ListingUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = Field(None, min_length=1)
    condition: Optional[Condition] = None
    status: Optional[ListingStatus] = None
    images: Optional[List[str]] = None


class ListingBrief(ORMModel):
    id: int
    seller_id: int
    title: str
    price: float
    category: str
    status: ListingStatus
    images: List[str] = Field(default_factory=list)


class ListingOut(ORMModel):
    id: int
    seller_id: int
    title: str
    description: str
    price: float
    category: str
    condition: Condition
    images: List[str] = Field(default_factory=list)
    status: ListingStatus
    created_at: datetime
    updated_at: datetime
    seller: Optional[UserSummary] = None


# ---------------- Offers ----------------
class OfferCreate(BaseModel):
    listing_id: int
    # sign is checked by the offer engine (InvalidArgument → 400)
    amount: float
    message: Optional[str] = None


class OfferOut(ORMModel):
    id: int
    listing_id: int
    buyer_id: int
    amount: float
    message: Optional[str] = None
    status: OfferStatus
    created_at: datetime
    updated_at: datetime


class OfferAcceptOut(OfferOut):
    transaction_id: int


class OfferWithBuyerOut(OfferOut):
    buyer: UserSummary


class OfferWithListingOut(OfferOut):
    listing: ListingBrief


class IncomingOfferOut(OfferOut):
    listing: ListingBrief
    buyer: UserSummary


class ListingWithOffersOut(ListingOut):
    offers: List[OfferWithBuyerOut] = Field(default_factory=list)


# ---------------- Transactions ----------------
class TransactionOut(ORMModel):
    id: int
    offer_id: int
    buyer_id: int
    seller_id: int
    status: TransactionStatus
    created_at: datetime
    updated_at: datetime


class TransactionDetailOut(TransactionOut):
    offer: OfferWithListingOut
    buyer: UserSummary
    seller: UserSummary
    allowed_transitions: List[TransactionStatus] = Field(default_factory=list)


class TransactionStatusIn(BaseModel):
    # plain str: the transaction flow parses it (case-insensitive, unknown → 400)
    status: str = Field(..., examples=[s.value for s in TransactionStatus])


# ---------------- Notifications ----------------
class NotificationOut(ORMModel):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    meta: Optional[Dict[str, Any]] = None
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime] = None
