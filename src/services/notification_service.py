"""Notification records and push delivery for group members."""

import logging
import time
import uuid
from typing import Any

import httpx
from pydantic import BaseModel, Field

from src.core.config import Constants, Settings
from src.core.errors import NotFound, ServiceError
from src.core.logging import span
from src.core.store import TreeStore, join_path
from src.domain.notification import Notification, NotificationType
from src.services.group_service import GroupService


logger = logging.getLogger(__name__)

# HTTP status code constants for error handling
HTTP_CLIENT_ERROR_START = 400
HTTP_CLIENT_ERROR_END = 500

_PUSH_TITLES = {
    NotificationType.MEAL_ADDED: "New meal on your list",
    NotificationType.LIST_CATEGORIZED: "Your list was organized",
    NotificationType.GROUP_MEMBERSHIP_CHANGED: "Your groups changed",
    NotificationType.GROUP_INVITATION: "You have been invited to a group",
}


class PushResult(BaseModel):
    """Result of one push delivery attempt."""

    success: bool = Field(..., description="Whether the push API accepted the message")
    error: str | None = Field(None, description="Error message if failed")


def _push_body(notification_type: str, data: dict[str, Any]) -> str:
    if notification_type == NotificationType.MEAL_ADDED and data.get("mealName"):
        return f"{data['mealName']} was added to your list"
    if notification_type == NotificationType.GROUP_INVITATION and data.get("groupName"):
        return f"{data.get('inviterName', 'A user')} invited you to {data['groupName']}"
    return "Open the app to see what changed"


class NotificationService:
    """Stores notifications under ``notifications/{uid}`` and forwards them as push messages."""

    def __init__(self, store: TreeStore, groups: GroupService, settings: Settings) -> None:
        self._store = store
        self._groups = groups
        self._settings = settings

    async def notify(self, uid: str, notification_type: str, data: dict[str, Any] | None = None) -> Notification | None:
        """Record a notification for ``uid`` and push it when push delivery is enabled.

        Never raises: a failed notification must not fail the mutation that caused it.

        Returns:
            The stored notification, or None when it could not be stored
        """
        with span("notification_service.notify", notification_type=notification_type):
            notification = Notification(
                id=str(uuid.uuid4()),
                recipient_uid=uid,
                type=notification_type,
                created_at=int(time.time() * 1000),
                data=data or {},
            )
            try:
                await self._store.write_path(join_path("notifications", uid, notification.id), notification.to_store())
            except ServiceError as e:
                logger.error("notification_store_failed", extra={"uid": uid, "error": str(e)})
                return None

            if self._settings.enable_push_notifications:
                result = await self._push(uid, notification)
                if not result.success:
                    logger.warning("push_failed", extra={"uid": uid, "error": result.error})

            logger.info("Notification recorded", extra={"uid": uid, "notification_type": notification_type})
            return notification

    async def notify_group(
        self,
        group_id: str,
        actor_uid: str,
        notification_type: str,
        data: dict[str, Any] | None = None,
    ) -> int:
        """Notify every member of the group except the actor.

        Returns:
            Number of notifications stored
        """
        with span("notification_service.notify_group", group_id=group_id):
            try:
                members = await self._groups.member_uids(group_id)
            except ServiceError as e:
                logger.error("notification_members_failed", extra={"group_id": group_id, "error": str(e)})
                return 0

            recipients = [uid for uid in members if uid != actor_uid]
            sent = 0
            for uid in recipients:
                if await self.notify(uid, notification_type, {**(data or {}), "groupId": group_id, "actorUid": actor_uid}):
                    sent += 1

            logger.info(
                "Group notified",
                extra={"group_id": group_id, "recipients": len(recipients), "stored": sent},
            )
            return sent

    async def _push(self, uid: str, notification: Notification) -> PushResult:
        try:
            token = await self._store.read_path(join_path("users", uid, "pushToken"))
        except ServiceError as e:
            return PushResult(success=False, error=f"Push token lookup failed: {e.message}")
        if not token:
            return PushResult(success=True)

        payload = {
            "to": token,
            "title": _PUSH_TITLES.get(notification.type, "GrocerEase"),
            "body": _push_body(notification.type, notification.data),
            "data": {"notificationId": notification.id, "type": notification.type, **notification.data},
        }
        try:
            async with httpx.AsyncClient(timeout=Constants.API_TIMEOUT_SECONDS) as client:
                response = await client.post(self._settings.push_api_url, json=payload)
        except httpx.HTTPError as e:
            return PushResult(success=False, error=f"Push request failed: {e!s}")

        if response.is_success:
            return PushResult(success=True)
        if HTTP_CLIENT_ERROR_START <= response.status_code < HTTP_CLIENT_ERROR_END:
            return PushResult(success=False, error=f"Client error: {response.text}")
        return PushResult(success=False, error=f"Server error: {response.status_code}")

    async def list_unread(self, uid: str) -> list[Notification]:
        """Return the user's unread notifications, newest first."""
        raw = await self._store.read_path(join_path("notifications", uid)) or {}
        notifications = [
            Notification.model_validate({"id": notification_id, **record})
            for notification_id, record in raw.items()
            if isinstance(record, dict)
        ]
        unread = [notification for notification in notifications if not notification.read]
        return sorted(unread, key=lambda notification: notification.created_at, reverse=True)

    async def dismiss(self, uid: str, notification_id: str) -> None:
        """Delete one of the user's own notifications."""
        path = join_path("notifications", uid, notification_id)
        if not await self._store.read_path(path):
            raise NotFound("Notification not found")
        await self._store.write_path(path, None)
        logger.info("Notification dismissed", extra={"uid": uid, "notification_id": notification_id})

    async def save_push_token(self, uid: str, token: str) -> None:
        await self._store.patch_path(join_path("users", uid), {"pushToken": token})
        logger.info("Push token saved", extra={"uid": uid})

    async def dismiss_for_invitation(self, uid: str, invitation_id: str) -> int:
        """Delete the user's notifications pointing at an answered invitation."""
        raw = await self._store.read_path(join_path("notifications", uid)) or {}
        stale = [
            notification_id
            for notification_id, record in raw.items()
            if isinstance(record, dict) and (record.get("data") or {}).get("invitationId") == invitation_id
        ]
        if stale:
            await self._store.patch_path(join_path("notifications", uid), dict.fromkeys(stale))
        logger.info("Invitation notifications cleared", extra={"uid": uid, "invitation_id": invitation_id, "count": len(stale)})
        return len(stale)
