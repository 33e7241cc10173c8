"""Notification endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from src.domain.create_models import PushTokenCreate
from src.interface.dependencies import current_uid, get_services
from src.services.container import Services


router = APIRouter(prefix="/notification", tags=["notification"])


@router.get("")
async def list_notifications(
    uid: str = Depends(current_uid),
    services: Services = Depends(get_services),
) -> list[dict[str, Any]]:
    """Return the caller's unread notifications, newest first."""
    notifications = await services.notifications.list_unread(uid)
    return [notification.to_store() for notification in notifications]


@router.post("/save-push-token")
async def save_push_token(
    body: PushTokenCreate,
    uid: str = Depends(current_uid),
    services: Services = Depends(get_services),
) -> dict[str, str]:
    await services.notifications.save_push_token(uid, body.token)
    return {"status": "success", "message": "Push token saved."}


@router.delete("/{notification_id}")
async def dismiss_notification(
    notification_id: str,
    uid: str = Depends(current_uid),
    services: Services = Depends(get_services),
) -> dict[str, str]:
    await services.notifications.dismiss(uid, notification_id)
    return {"message": "Notification dismissed successfully"}
