"""Group endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, status

from src.domain.create_models import GroupCreate
from src.domain.update_models import GroupUpdate
from src.interface.dependencies import GroupAccess, current_uid, get_services, group_owner
from src.services.container import Services


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/group", tags=["group"])


@router.get("")
async def list_groups(uid: str = Depends(current_uid), services: Services = Depends(get_services)) -> list[dict[str, Any]]:
    """Return the caller's groups, provisioning the default private group on first use."""
    groups = await services.groups.list_groups_for(uid)
    return [group.to_store() for group in groups]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_group(
    body: GroupCreate,
    uid: str = Depends(current_uid),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    group = await services.groups.create_group(uid=uid, name=body.name)
    return group.to_store()


@router.put("/{group_id}")
async def update_group(
    group_id: str,
    body: GroupUpdate,
    access: GroupAccess = Depends(group_owner),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    group = await services.groups.update_group(group_id=group_id, uid=access.uid, update=body)
    return group.to_store()


@router.delete("/{group_id}")
async def delete_group(
    group_id: str,
    access: GroupAccess = Depends(group_owner),
    services: Services = Depends(get_services),
) -> dict[str, str]:
    await services.groups.delete_group(group_id=group_id, uid=access.uid)
    return {"message": "Group deleted"}
