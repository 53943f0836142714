import json
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db, NotificationLog, NotificationRecord, User
from notifier import effective_settings, send_test_notification
from schemas import (
    NotificationCheck,
    NotificationLogResponse,
    NotificationResponse,
    NotificationSettingsIn,
    NotificationSettingsOut,
    PushSubscription,
)
from stores import (
    acknowledge,
    get_notification_settings,
    list_unacknowledged,
    upsert_notification_settings,
)


notification_router = APIRouter()


def _settings_out(db: Session, user_email: str) -> NotificationSettingsOut:
    settings = get_notification_settings(db, user_email)
    return NotificationSettingsOut(
        user_email=user_email,
        push_enabled=bool(settings is not None and settings.push_token),
        **effective_settings(db, user_email),
    )


@notification_router.get("", response_model=List[NotificationResponse])
async def get_notifications(
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return list_unacknowledged(db, current_user.email, limit)


@notification_router.get("/settings", response_model=NotificationSettingsOut)
async def get_settings(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    return _settings_out(db, current_user.email)


@notification_router.post("/settings", response_model=NotificationSettingsOut)
async def update_settings(
    settings: NotificationSettingsIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    upsert_notification_settings(db, current_user.email, **settings.model_dump())
    return _settings_out(db, current_user.email)


@notification_router.post("/subscribe")
async def subscribe(
    payload: PushSubscription,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    upsert_notification_settings(
        db,
        current_user.email,
        push_token=json.dumps(payload.subscription),
        daily_reminders=True,
        budget_alerts=True,
        weekly_reports=True,
    )
    return {"success": True, "message": "Push notifications enabled"}


@notification_router.post("/unsubscribe")
async def unsubscribe(
    db: Session = Depends(get_db), current_user: User = Depends(get_current_user)
):
    upsert_notification_settings(
        db,
        current_user.email,
        push_token=None,
        daily_reminders=False,
        budget_alerts=False,
        weekly_reports=False,
    )
    return {"success": True, "message": "Push notifications disabled"}


@notification_router.get("/logs", response_model=List[NotificationLogResponse])
async def get_logs(
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return (
        db.query(NotificationLog)
        .filter(NotificationLog.user_email == current_user.email)
        .order_by(NotificationLog.created_at.desc(), NotificationLog.id.desc())
        .limit(limit)
        .all()
    )


@notification_router.api_route("/{notification_id}/read", methods=["POST", "PATCH"])
async def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    record = (
        db.query(NotificationRecord)
        .filter(
            NotificationRecord.id == notification_id,
            NotificationRecord.user_email == current_user.email,
        )
        .first()
    )
    if not record:
        raise HTTPException(status_code=404, detail="Notification not found")

    acknowledge(db, notification_id)
    return {"message": "Notification marked as read"}


@notification_router.post("/test")
async def send_test(
    payload: NotificationCheck,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    success = send_test_notification(db, current_user.email, payload.type)
    return {
        "success": success,
        "message": "Notification sent" if success else "Failed to send notification",
    }
