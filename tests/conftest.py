# tests/conftest.py
# In-memory SQLite shared through StaticPool, so the request sessions opened by
# TestClient and the test's own session see the same data.
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.pop("P2P_RULES_YAML", None)

import pytest
from fastapi.testclient import TestClient

from p2p_market import crud, schemas
from p2p_market.database import Base, SessionLocal, engine
from p2p_market.logic.notifications import (
    FanoutNotifier,
    InboxNotifier,
    RecordingNotifier,
    get_notifier,
    hub,
)
from p2p_market.main import app
from p2p_market.models import Condition, ListingStatus
from p2p_market.security import create_access_token


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def make_user(db):
    def _make(email: str, name: str = None, password: str = "password123"):
        return crud.create_user(db, schemas.UserCreate(email=email, password=password, name=name))

    return _make


@pytest.fixture
def seller(make_user):
    return make_user("alice@example.com", "Alice Seller")


@pytest.fixture
def buyer(make_user):
    return make_user("bob@example.com", "Bob Buyer")


@pytest.fixture
def other_buyer(make_user):
    return make_user("charlie@example.com", "Charlie User")


@pytest.fixture
def make_listing(db):
    def _make(seller_id: int, title: str = "iPhone 15 Pro", price: float = 999, **kw):
        payload = schemas.ListingCreate(
            title=title,
            description=kw.pop("description", "Brand new, sealed box."),
            price=price,
            category=kw.pop("category", "Electronics"),
            condition=kw.pop("condition", Condition.NEW),
            images=kw.pop("images", []),
            status=kw.pop("status", ListingStatus.ACTIVE),
        )
        return crud.create_listing(db, payload, seller_id=seller_id)

    return _make


@pytest.fixture
def listing(make_listing, seller):
    return make_listing(seller.id)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(db, notifier):
    app.dependency_overrides[get_notifier] = lambda: FanoutNotifier(notifier, InboxNotifier(SessionLocal), hub)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth(user) -> dict:
    token = create_access_token({"sub": str(user.id), "email": user.email})
    return {"Authorization": f"Bearer {token}"}
