"""FastAPI dependencies for authentication and group authorization."""

import logging
from dataclasses import dataclass

from fastapi import Depends, Request

from src.core.errors import ValidationFailed
from src.services.container import Services
from src.services.identity_service import bearer_token


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupAccess:
    """Authenticated caller acting on one group."""

    uid: str
    group_id: str


def get_services(request: Request) -> Services:
    return request.app.state.services


async def current_uid(request: Request, services: Services = Depends(get_services)) -> str:
    """Verify the ``Authorization: Bearer`` header and return the caller's uid."""
    token = bearer_token(request.headers.get("authorization"))
    return await services.identity.verify(token)


def _group_id(request: Request) -> str:
    group_id = request.path_params.get("group_id") or request.query_params.get("groupId")
    if not group_id:
        raise ValidationFailed("groupId is required")
    return group_id


async def group_member(
    request: Request,
    uid: str = Depends(current_uid),
    services: Services = Depends(get_services),
) -> GroupAccess:
    """Require the caller to be a member of the group named by the path or ``groupId`` query."""
    group_id = _group_id(request)
    await services.groups.require_member(group_id, uid)
    return GroupAccess(uid=uid, group_id=group_id)


async def group_owner(
    request: Request,
    uid: str = Depends(current_uid),
    services: Services = Depends(get_services),
) -> GroupAccess:
    """Require the caller to own the group named by the path or ``groupId`` query."""
    group_id = _group_id(request)
    await services.groups.require_owner(group_id, uid)
    return GroupAccess(uid=uid, group_id=group_id)
