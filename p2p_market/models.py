# p2p_market/models.py
# Users / Listings / Offers / Transactions + persisted notification inbox
from sqlalchemy import (
    Column, Integer, String, DateTime, Float, ForeignKey, Text, Boolean,
    Enum as SAEnum, JSON, Index, CheckConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -------------------------------------------------------
# 🧩 User
# -------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    listings = relationship("Listing", back_populates="seller")
    offers = relationship("Offer", back_populates="buyer")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"


# -------------------------------------------------------
# 📦 Listing
# -------------------------------------------------------
class ListingStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    SOLD = "SOLD"
    EXPIRED = "EXPIRED"


class Condition(str, enum.Enum):
    NEW = "NEW"
    LIKE_NEW = "LIKE_NEW"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"


class Listing(Base):
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, index=True)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Float, nullable=False)
    category = Column(String, nullable=False)
    condition = Column(SAEnum(Condition, name="listingcondition"), nullable=False, default=Condition.GOOD)
    images = Column(JSON, nullable=False, default=list)
    status = Column(
        SAEnum(ListingStatus, name="listingstatus"),
        nullable=False,
        default=ListingStatus.ACTIVE,
        server_default=ListingStatus.ACTIVE.value,
    )
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    seller = relationship("User", back_populates="listings")
    offers = relationship("Offer", back_populates="listing", order_by="Offer.created_at.desc()")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_listing_price_nonneg"),
        Index("ix_listing_status_created", "status", "created_at"),
        Index("ix_listing_seller", "seller_id"),
        Index("ix_listing_category", "category"),
    )


# -------------------------------------------------------
# 💰 Offer
# -------------------------------------------------------
class OfferStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    WITHDRAWN = "WITHDRAWN"


class Offer(Base):
    __tablename__ = "offers"

    id = Column(Integer, primary_key=True, index=True)
    listing_id = Column(Integer, ForeignKey("listings.id"), nullable=False)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    amount = Column(Float, nullable=False)
    message = Column(Text, nullable=True)
    status = Column(
        SAEnum(OfferStatus, name="offerstatus"),
        nullable=False,
        default=OfferStatus.PENDING,
        server_default=OfferStatus.PENDING.value,
    )
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    listing = relationship("Listing", back_populates="offers")
    buyer = relationship("User", back_populates="offers")
    transaction = relationship("Transaction", back_populates="offer", uselist=False)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_offer_amount_nonneg"),
        Index("ix_offer_listing_status", "listing_id", "status"),
        Index("ix_offer_buyer_created", "buyer_id", "created_at"),
    )


# -------------------------------------------------------
# 🧾 Transaction (one per accepted offer)
# -------------------------------------------------------
class TransactionStatus(str, enum.Enum):
    OFFER_ACCEPTED = "OFFER_ACCEPTED"
    PAYMENT_PENDING = "PAYMENT_PENDING"  # display-only; no transition leads here
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    DISPUTED = "DISPUTED"
    CANCELLED = "CANCELLED"


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    offer_id = Column(Integer, ForeignKey("offers.id"), unique=True, nullable=False)
    buyer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    seller_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(
        SAEnum(TransactionStatus, name="transactionstatus"),
        nullable=False,
        default=TransactionStatus.OFFER_ACCEPTED,
        server_default=TransactionStatus.OFFER_ACCEPTED.value,
    )
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    offer = relationship("Offer", back_populates="transaction")
    buyer = relationship("User", foreign_keys=[buyer_id])
    seller = relationship("User", foreign_keys=[seller_id])

    __table_args__ = (
        Index("ix_tx_buyer_updated", "buyer_id", "updated_at"),
        Index("ix_tx_seller_updated", "seller_id", "updated_at"),
    )


# -------------------------------------------------------
# 🔔 UserNotification (inbox copy of every pushed event)
# -------------------------------------------------------
class UserNotification(Base):
    __tablename__ = "user_notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    meta = Column(JSON, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_notif_user_read_created", "user_id", "is_read", "created_at"),
    )
