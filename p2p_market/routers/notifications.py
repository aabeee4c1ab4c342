# p2p_market/routers/notifications.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, WebSocket, WebSocketDisconnect, status
from jose import JWTError
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from p2p_market import models, schemas
from p2p_market.database import get_db
from p2p_market.logic.notifications import hub
from p2p_market.security import decode_user_id, get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])


# -------------------------------------------------------
# inbox
# -------------------------------------------------------
@router.get("", response_model=List[schemas.NotificationOut], summary="My notifications")
def list_notifications(
    only_unread: bool = Query(False, description="only unread notifications"),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    q = select(models.UserNotification).where(models.UserNotification.user_id == current_user.id)
    if only_unread:
        q = q.where(models.UserNotification.is_read.is_(False))
    q = q.order_by(models.UserNotification.created_at.desc(), models.UserNotification.id.desc()).limit(limit)
    return list(db.scalars(q))


@router.post("/read_all", summary="Mark all my notifications read")
def mark_all_notifications_read(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    updated = db.execute(
        update(models.UserNotification)
        .where(
            models.UserNotification.user_id == current_user.id,
            models.UserNotification.is_read.is_(False),
        )
        .values(is_read=True, read_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    ).rowcount
    db.commit()
    return {"updated": int(updated or 0)}


@router.post("/{notification_id}/read", response_model=schemas.NotificationOut, summary="Mark one notification read")
def mark_notification_read(
    notification_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    notif = db.get(models.UserNotification, notification_id)
    # someone else's notification is reported as missing
    if not notif or notif.user_id != current_user.id:
        raise HTTPException(status_code=404, detail="Notification not found")

    if not notif.is_read:
        notif.is_read = True
        notif.read_at = datetime.now(timezone.utc)
        db.add(notif)
        db.commit()
        db.refresh(notif)
    return notif


# -------------------------------------------------------
# live push
# -------------------------------------------------------
def _token_from(websocket: WebSocket, token: Optional[str]) -> Optional[str]:
    if token:
        return token
    auth = websocket.headers.get("authorization") or ""
    scheme, _, value = auth.partition(" ")
    if scheme.lower() == "bearer" and value:
        return value
    return None


@router.websocket("/ws")
async def notifications_ws(websocket: WebSocket, token: Optional[str] = Query(None)):
    raw = _token_from(websocket, token)
    if not raw:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    try:
        user_id = decode_user_id(raw)
    except JWTError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await hub.connect(user_id, websocket)
    try:
        while True:
            # inbound frames are keep-alives only
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(user_id, websocket)
