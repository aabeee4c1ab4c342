# scripts/seed_data.py
# Deterministic demo data:
#   - 3 users (alice sells, bob buys, charlie does both), password "password123"
#   - 6 ACTIVE listings
#   - 4 PENDING offers (two competing offers on alice's iPhone)
#
# usage)
#   python -m scripts.seed_data            # seed into DATABASE_URL
#   python -m scripts.seed_data --reset    # wipe marketplace tables first

from __future__ import annotations

import argparse
import logging

from sqlalchemy import delete
from sqlalchemy.orm import Session

from p2p_market import crud, models, schemas
from p2p_market.database import Base, SessionLocal, engine
from p2p_market.models import Condition, ListingStatus, OfferStatus

logger = logging.getLogger(__name__)

PASSWORD = "password123"

USERS = [
    ("alice@example.com", "Alice Seller"),
    ("bob@example.com", "Bob Buyer"),
    ("charlie@example.com", "Charlie User"),
]

LISTINGS = [
    # (seller email, title, description, price, category, condition, image)
    ("alice@example.com", "iPhone 15 Pro", "Brand new, sealed box. 256GB storage. Blue Titanium.",
     999, "Electronics", Condition.NEW,
     "https://images.pexels.com/photos/788946/pexels-photo-788946.jpeg?auto=compress&cs=tinysrgb&w=800"),
    ("alice@example.com", "MacBook Air M2", "Used for 3 months. Perfect condition. 8GB/256GB.",
     850, "Electronics", Condition.LIKE_NEW,
     "https://images.pexels.com/photos/303383/pexels-photo-303383.jpeg?auto=compress&cs=tinysrgb&w=800"),
    ("charlie@example.com", "Vintage Leather Jacket", "Genuine leather, size M. Good condition with some wear.",
     120, "Clothing", Condition.GOOD,
     "https://images.pexels.com/photos/1124468/pexels-photo-1124468.jpeg?auto=compress&cs=tinysrgb&w=800"),
    ("charlie@example.com", "Sony WH-1000XM5", "Noise cancelling headphones. Silver.",
     280, "Electronics", Condition.LIKE_NEW,
     "https://images.pexels.com/photos/3394650/pexels-photo-3394650.jpeg?auto=compress&cs=tinysrgb&w=800"),
    ("charlie@example.com", "Mountain Bike", "Trek Marlin 5. Needs minor tune up.",
     350, "Sports", Condition.FAIR,
     "https://placehold.co/400"),
    ("alice@example.com", "Gaming PC", "RTX 3070, Ryzen 5 5600X, 16GB RAM.",
     900, "Electronics", Condition.GOOD,
     "https://images.pexels.com/photos/777001/pexels-photo-777001.jpeg?auto=compress&cs=tinysrgb&w=800"),
]

OFFERS = [
    # (buyer email, listing index, amount, message)
    ("bob@example.com", 0, 950, "Can you do $950? Cash ready."),
    ("bob@example.com", 1, 800, "Would you take 800?"),
    ("charlie@example.com", 0, 900, "Interested."),
    ("bob@example.com", 3, 250, "250 and I pick up today"),
]


def reset(db: Session) -> None:
    for model in (
        models.UserNotification,
        models.Transaction,
        models.Offer,
        models.Listing,
        models.User,
    ):
        db.execute(delete(model))
    db.commit()


def seed(db: Session) -> dict:
    users = {}
    for email, name in USERS:
        user = crud.get_user_by_email(db, email)
        if user is None:
            user = crud.create_user(db, schemas.UserCreate(email=email, password=PASSWORD, name=name))
        users[email] = user

    listings = []
    for seller, title, description, price, category, condition, image in LISTINGS:
        listings.append(
            crud.create_listing(
                db,
                schemas.ListingCreate(
                    title=title,
                    description=description,
                    price=price,
                    category=category,
                    condition=condition,
                    images=[image],
                    status=ListingStatus.ACTIVE,
                ),
                seller_id=users[seller].id,
            )
        )

    # offers go in directly: seeding must not emit notifications
    for buyer, idx, amount, message in OFFERS:
        db.add(
            models.Offer(
                listing_id=listings[idx].id,
                buyer_id=users[buyer].id,
                amount=amount,
                message=message,
                status=OfferStatus.PENDING,
            )
        )
    db.commit()

    return {"users": len(users), "listings": len(listings), "offers": len(OFFERS)}


def main() -> None:
    ap = argparse.ArgumentParser(description="Seed the marketplace with demo data")
    ap.add_argument("--reset", action="store_true", help="delete existing marketplace rows first")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        if args.reset:
            reset(db)
        counts = seed(db)
    finally:
        db.close()
    logger.info("seed completed: %s", counts)


if __name__ == "__main__":
    main()
