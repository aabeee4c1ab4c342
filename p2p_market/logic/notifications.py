# p2p_market/logic/notifications.py
"""
Counterparty notifications.

The offer engine and the transaction flow only see the `Notifier` protocol:
`push(user_id, event)`. Concrete notifiers:

- InboxNotifier   : writes a UserNotification row (own session, own commit)
- WebSocketHub    : pushes to the user's open websocket connections
- FanoutNotifier  : sends one event to several notifiers, isolating failures
- RecordingNotifier: in-memory double used by tests

Delivery is best-effort and at-most-once. Callers go through `safe_push`,
which logs and swallows any failure so a state change is never rolled back
because a notification could not be delivered.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, Tuple

from sqlalchemy.orm import Session

from p2p_market import models

logger = logging.getLogger(__name__)


class NotificationType(str, enum.Enum):
    NEW_OFFER = "NEW_OFFER"
    OFFER_ACCEPTED = "OFFER_ACCEPTED"
    OFFER_DECLINED = "OFFER_DECLINED"
    OFFER_WITHDRAWN = "OFFER_WITHDRAWN"
    TRANSACTION_UPDATE = "TRANSACTION_UPDATE"


_TITLES = {
    NotificationType.NEW_OFFER: "New offer",
    NotificationType.OFFER_ACCEPTED: "Offer accepted",
    NotificationType.OFFER_DECLINED: "Offer declined",
    NotificationType.OFFER_WITHDRAWN: "Offer withdrawn",
    NotificationType.TRANSACTION_UPDATE: "Transaction update",
}


@dataclass(frozen=True)
class NotificationEvent:
    type: NotificationType
    message: str
    listing_id: int
    offer_id: Optional[int] = None
    transaction_id: Optional[int] = None
    amount: Optional[float] = None
    status: Optional[str] = None

    @property
    def title(self) -> str:
        return _TITLES[self.type]

    def meta(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"listing_id": self.listing_id}
        for key in ("offer_id", "transaction_id", "amount", "status"):
            value = getattr(self, key)
            if value is not None:
                out[key] = value
        return out

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type.value, "message": self.message, **self.meta()}


# -------------------------------------------------------
# payload shaping
# -------------------------------------------------------
def _money(amount: float) -> str:
    return f"${amount:,.2f}"


def new_offer_event(listing: models.Listing, offer: models.Offer) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.NEW_OFFER,
        message=f"New offer of {_money(offer.amount)} for {listing.title}",
        listing_id=listing.id,
        offer_id=offer.id,
        amount=offer.amount,
    )


def offer_accepted_event(listing_id: int, listing_title: str, offer_id: int, transaction_id: int) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.OFFER_ACCEPTED,
        message=f"Your offer for {listing_title} was accepted!",
        listing_id=listing_id,
        offer_id=offer_id,
        transaction_id=transaction_id,
    )


def offer_declined_event(listing_id: int, listing_title: str, offer_id: int, *, sold: bool = False) -> NotificationEvent:
    if sold:
        message = f"Your offer for {listing_title} was declined because the item was sold to another buyer."
    else:
        message = f"Your offer for {listing_title} was declined."
    return NotificationEvent(
        type=NotificationType.OFFER_DECLINED,
        message=message,
        listing_id=listing_id,
        offer_id=offer_id,
    )


def offer_withdrawn_event(listing: models.Listing, offer: models.Offer) -> NotificationEvent:
    return NotificationEvent(
        type=NotificationType.OFFER_WITHDRAWN,
        message=f"Offer for {listing.title} was withdrawn by the buyer.",
        listing_id=listing.id,
        offer_id=offer.id,
    )


def transaction_update_event(listing: models.Listing, tx: models.Transaction) -> NotificationEvent:
    status = tx.status.value if isinstance(tx.status, enum.Enum) else str(tx.status)
    return NotificationEvent(
        type=NotificationType.TRANSACTION_UPDATE,
        message=f"Transaction for {listing.title} is now {status}",
        listing_id=listing.id,
        transaction_id=tx.id,
        status=status,
    )


# -------------------------------------------------------
# notifier capability
# -------------------------------------------------------
class Notifier(Protocol):
    def push(self, user_id: int, event: NotificationEvent) -> None:
        ...


def safe_push(notifier: Optional[Notifier], user_id: int, event: NotificationEvent) -> bool:
    """Push and never raise. Returns False when delivery failed."""
    if notifier is None:
        return False
    try:
        notifier.push(user_id, event)
        return True
    except Exception:
        logger.warning(
            "notification push failed: user_id=%s type=%s", user_id, event.type.value, exc_info=True
        )
        return False


@dataclass
class RecordingNotifier:
    events: List[Tuple[int, NotificationEvent]] = field(default_factory=list)

    def push(self, user_id: int, event: NotificationEvent) -> None:
        self.events.append((user_id, event))

    def for_user(self, user_id: int) -> List[NotificationEvent]:
        return [e for uid, e in self.events if uid == user_id]

    def of_type(self, type_: NotificationType) -> List[Tuple[int, NotificationEvent]]:
        return [(uid, e) for uid, e in self.events if e.type is type_]

    def clear(self) -> None:
        self.events.clear()


class InboxNotifier:
    """Persists each event as a UserNotification using its own session."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def push(self, user_id: int, event: NotificationEvent) -> None:
        db = self._session_factory()
        try:
            db.add(
                models.UserNotification(
                    user_id=user_id,
                    type=event.type.value,
                    title=event.title,
                    message=event.message,
                    meta=event.meta(),
                    is_read=False,
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class WebSocketHub:
    """
    Connected sockets keyed by user id.
    push() is called from sync request handlers (threadpool), so sends are
    scheduled onto the event loop that owns the sockets.
    """

    def __init__(self) -> None:
        self._connections: Dict[int, Set[Any]] = defaultdict(set)
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def connect(self, user_id: int, websocket) -> None:
        # only accepted sockets are registered; sends on a CONNECTING socket fail
        await websocket.accept()
        self._loop = asyncio.get_running_loop()
        with self._lock:
            self._connections[user_id].add(websocket)
        logger.info("websocket connected: user_id=%s", user_id)

    def disconnect(self, user_id: int, websocket) -> None:
        with self._lock:
            sockets = self._connections.get(user_id)
            if sockets is not None:
                sockets.discard(websocket)
                if not sockets:
                    del self._connections[user_id]
        logger.info("websocket disconnected: user_id=%s", user_id)

    def connection_count(self, user_id: int) -> int:
        with self._lock:
            return len(self._connections.get(user_id, ()))

    def push(self, user_id: int, event: NotificationEvent) -> None:
        with self._lock:
            sockets = list(self._connections.get(user_id, ()))
        if not sockets or self._loop is None:
            return

        message = {"event": "notification", "data": event.to_payload()}
        for ws in sockets:
            fut = asyncio.run_coroutine_threadsafe(ws.send_json(message), self._loop)
            fut.add_done_callback(_log_send_failure)


def _log_send_failure(fut) -> None:
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        logger.warning("websocket send failed: %s: %s", exc.__class__.__name__, exc)


class FanoutNotifier:
    def __init__(self, *notifiers: Notifier):
        self.notifiers = list(notifiers)

    def push(self, user_id: int, event: NotificationEvent) -> None:
        # one broken channel must not starve the others
        for n in self.notifiers:
            safe_push(n, user_id, event)


# -------------------------------------------------------
# app-wide default (overridden in tests via dependency_overrides)
# -------------------------------------------------------
hub = WebSocketHub()
_default_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    global _default_notifier
    if _default_notifier is None:
        from p2p_market.database import SessionLocal

        _default_notifier = FanoutNotifier(InboxNotifier(SessionLocal), hub)
    return _default_notifier
