"""Group invitations: the way users join a group they do not own."""

import logging
import time
import uuid
from typing import Any

from src.core.errors import Forbidden, NotFound, ValidationFailed
from src.core.logging import span
from src.core.store import ABORT, TreeStore, join_path
from src.domain.group import Group
from src.domain.invitation import Invitation, InvitationStatus
from src.domain.notification import NotificationType
from src.services.group_service import GroupService
from src.services.notification_service import NotificationService


logger = logging.getLogger(__name__)


class InvitationService:
    """Reads and writes ``invitations/{invitationId}``.

    Answered invitations are deleted together with the invitee's notifications about them.
    """

    def __init__(self, store: TreeStore, groups: GroupService, notifications: NotificationService) -> None:
        self._store = store
        self._groups = groups
        self._notifications = notifications

    async def _pending(self) -> list[Invitation]:
        raw: dict[str, Any] = await self._store.read_path("invitations") or {}
        invitations = [
            Invitation.from_store(invitation_id, record)
            for invitation_id, record in raw.items()
            if isinstance(record, dict)
        ]
        return [invitation for invitation in invitations if invitation.status == InvitationStatus.PENDING]

    async def _get_for_invitee(self, invitation_id: str, uid: str) -> Invitation:
        raw = await self._store.read_path(join_path("invitations", invitation_id))
        if not isinstance(raw, dict):
            raise NotFound("Invitation not found")
        invitation = Invitation.from_store(invitation_id, raw)
        if invitation.invitee_uid != uid:
            logger.warning("invitation_access_denied", extra={"invitation_id": invitation_id, "uid": uid})
            raise Forbidden("Forbidden")
        return invitation

    async def create_invitation(self, *, group_id: str, inviter_uid: str, invitee_uid: str) -> Invitation:
        """Invite ``invitee_uid`` into the group and notify them.

        Inviting someone who already has a pending invitation to the group returns that
        invitation unchanged.
        """
        with span("invitation_service.create_invitation", group_id=group_id):
            group = await self._groups.get_group(group_id)
            if invitee_uid in group.members:
                raise ValidationFailed("User is already a member of this group")

            for invitation in await self._pending():
                if invitation.group_id == group_id and invitation.invitee_uid == invitee_uid:
                    logger.info("Invitation already pending", extra={"invitation_id": invitation.id})
                    return invitation

            inviter_name = await self._store.read_path(join_path("users", inviter_uid, "displayName"))
            invitation = Invitation(
                id=str(uuid.uuid4()),
                group_id=group_id,
                group_name=group.name,
                inviter_uid=inviter_uid,
                inviter_name=inviter_name or "A user",
                invitee_uid=invitee_uid,
                created_at=int(time.time() * 1000),
            )
            await self._store.write_path(join_path("invitations", invitation.id), invitation.to_record())
            logger.info(
                "Invitation created",
                extra={"invitation_id": invitation.id, "group_id": group_id, "invitee_uid": invitee_uid},
            )

            await self._notifications.notify(
                invitee_uid,
                NotificationType.GROUP_INVITATION,
                {
                    "invitationId": invitation.id,
                    "groupId": group_id,
                    "groupName": invitation.group_name,
                    "inviterName": invitation.inviter_name,
                },
            )
            return invitation

    async def list_pending(self, group_id: str) -> list[Invitation]:
        """Return the group's unanswered invitations, oldest first."""
        invitations = [invitation for invitation in await self._pending() if invitation.group_id == group_id]
        return sorted(invitations, key=lambda invitation: invitation.created_at)

    async def accept(self, *, invitation_id: str, uid: str) -> Group:
        """Add the invitee to the group and discard the invitation."""
        with span("invitation_service.accept", invitation_id=invitation_id):
            invitation = await self._get_for_invitee(invitation_id, uid)

            def _join(current: Any) -> Any:  # noqa: ANN401
                if not isinstance(current, dict):
                    return ABORT
                members = current.get("members") or {}
                return {**current, "members": {**members, uid: True}}

            result = await self._store.transact(join_path("groups", invitation.group_id), _join)
            await self._discard(invitation)
            if not result.committed:
                raise NotFound(f"Group not found: {invitation.group_id}")

            logger.info("Invitation accepted", extra={"invitation_id": invitation_id, "group_id": invitation.group_id})
            return Group.from_store(invitation.group_id, result.value)

    async def decline(self, *, invitation_id: str, uid: str) -> None:
        with span("invitation_service.decline", invitation_id=invitation_id):
            invitation = await self._get_for_invitee(invitation_id, uid)
            await self._discard(invitation)
            logger.info("Invitation declined", extra={"invitation_id": invitation_id, "group_id": invitation.group_id})

    async def _discard(self, invitation: Invitation) -> None:
        await self._store.write_path(join_path("invitations", invitation.id), None)
        await self._notifications.dismiss_for_invitation(invitation.invitee_uid, invitation.id)
