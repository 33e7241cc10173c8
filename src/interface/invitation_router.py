"""Group invitation endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, status

from src.domain.create_models import InvitationCreate
from src.domain.notification import NotificationType
from src.interface.dependencies import GroupAccess, current_uid, get_services, group_owner
from src.services.container import Services


logger = logging.getLogger(__name__)

router = APIRouter(tags=["invitation"])


@router.post("/group/{group_id}/invitations", status_code=status.HTTP_201_CREATED)
async def create_invitation(
    body: InvitationCreate,
    access: GroupAccess = Depends(group_owner),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Invite a user into the group; the invitee is notified."""
    invitation = await services.invitations.create_invitation(
        group_id=access.group_id, inviter_uid=access.uid, invitee_uid=body.invitee_uid
    )
    return invitation.to_store()


@router.get("/group/{group_id}/invitations")
async def list_invitations(
    access: GroupAccess = Depends(group_owner),
    services: Services = Depends(get_services),
) -> list[dict[str, Any]]:
    invitations = await services.invitations.list_pending(access.group_id)
    return [invitation.to_store() for invitation in invitations]


@router.post("/invitation/accept/{invitation_id}")
async def accept_invitation(
    invitation_id: str,
    background_tasks: BackgroundTasks,
    uid: str = Depends(current_uid),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Join the invitation's group. Existing members are told after the response is sent."""
    group = await services.invitations.accept(invitation_id=invitation_id, uid=uid)

    background_tasks.add_task(
        services.notifications.notify_group,
        group.id,
        uid,
        NotificationType.GROUP_MEMBERSHIP_CHANGED,
        {"memberUid": uid},
    )
    return group.to_store()


@router.post("/invitation/decline/{invitation_id}")
async def decline_invitation(
    invitation_id: str,
    uid: str = Depends(current_uid),
    services: Services = Depends(get_services),
) -> dict[str, str]:
    await services.invitations.decline(invitation_id=invitation_id, uid=uid)
    return {"message": "Invitation declined"}
